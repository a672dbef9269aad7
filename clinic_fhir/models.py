from sqlalchemy import Column, Integer, Float, String, Text, Boolean, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import hashlib
import uuid

from .database import Base


def utcnow():
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Clinic(Base):
    """Tenant. Every clinical record is reachable from exactly one clinic."""
    __tablename__ = "clinics"

    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow)


class Patient(Base):
    """Patient identity and demographics, scoped to one clinic"""
    __tablename__ = "patients"

    id = Column(String(64), primary_key=True, default=new_id)
    clinic_id = Column(String(64), ForeignKey("clinics.id"), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    date_of_birth = Column(Date, nullable=False)
    gender = Column(String(32), nullable=True)  # MALE, FEMALE, OTHER, INTERSEX, NON_BINARY, PREFER_NOT_TO_SAY
    phone_number = Column(String(32), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    mrn = Column(String(64), nullable=True)
    race = Column(String(100), nullable=True)
    ethnicity = Column(String(100), nullable=True)
    preferred_language = Column(String(35), nullable=True)  # BCP-47 tag, e.g. 'en'
    emergency_contact_name = Column(String(255), nullable=True)
    emergency_contact_phone = Column(String(32), nullable=True)
    emergency_contact_relation = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(String(64), primary_key=True, default=new_id)
    clinic_id = Column(String(64), ForeignKey("clinics.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)


class Appointment(Base):
    """A visit; exported as the FHIR Encounter that other resources reference"""
    __tablename__ = "appointments"

    id = Column(String(64), primary_key=True, default=new_id)
    clinic_id = Column(String(64), ForeignKey("clinics.id"), nullable=False, index=True)
    patient_id = Column(String(64), ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id = Column(String(64), ForeignKey("doctors.id"), nullable=True)
    start_time = Column(DateTime, nullable=False)

    patient = relationship("Patient")
    doctor = relationship("Doctor")
    vital_signs = relationship("VitalSign", back_populates="appointment")
    diagnoses = relationship("Diagnosis", back_populates="appointment")


class VitalSign(Base):
    """
    One vitals snapshot taken during an appointment.

    Every measurement is optional; NULL means "not recorded".
    """
    __tablename__ = "vital_signs"

    id = Column(String(64), primary_key=True, default=new_id)
    appointment_id = Column(String(64), ForeignKey("appointments.id"), nullable=False, index=True)
    systolic_bp = Column(Integer, nullable=True)
    diastolic_bp = Column(Integer, nullable=True)
    pulse = Column(Integer, nullable=True)
    temperature = Column(Float, nullable=True)  # Celsius
    spo2 = Column(Float, nullable=True)
    respiratory_rate = Column(Integer, nullable=True)
    height = Column(Float, nullable=True)  # cm
    weight = Column(Float, nullable=True)  # kg
    bmi = Column(Float, nullable=True)
    blood_glucose = Column(Float, nullable=True)  # mg/dL
    created_at = Column(DateTime, default=utcnow)

    appointment = relationship("Appointment", back_populates="vital_signs")


class Prescription(Base):
    __tablename__ = "prescriptions"

    id = Column(String(64), primary_key=True, default=new_id)
    patient_id = Column(String(64), ForeignKey("patients.id"), nullable=False, index=True)
    appointment_id = Column(String(64), ForeignKey("appointments.id"), nullable=False, index=True)
    doctor_id = Column(String(64), ForeignKey("doctors.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    patient = relationship("Patient")
    appointment = relationship("Appointment")
    doctor = relationship("Doctor")
    medications = relationship(
        "Medication",
        back_populates="prescription",
        order_by="Medication.created_at",
    )


class Medication(Base):
    """A single medication line on a prescription"""
    __tablename__ = "medications"

    id = Column(String(64), primary_key=True, default=new_id)
    prescription_id = Column(String(64), ForeignKey("prescriptions.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    dosage = Column(String(100), nullable=False)
    route = Column(String(32), nullable=False)  # PO, IV, IM, SC, ...
    frequency = Column(String(100), nullable=False)
    duration = Column(String(100), nullable=False)
    ndc_code = Column(String(32), nullable=True)
    rxnorm_cui = Column(String(32), nullable=True)
    quantity = Column(Integer, nullable=True)
    refills_allowed = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    prescription = relationship("Prescription", back_populates="medications")


class PatientMedicalCondition(Base):
    """Longitudinal problem-list entry"""
    __tablename__ = "patient_medical_conditions"

    id = Column(String(64), primary_key=True, default=new_id)
    patient_id = Column(String(64), ForeignKey("patients.id"), nullable=False, index=True)
    condition_name = Column(String(255), nullable=False)
    condition_type = Column(String(32), nullable=False)  # CHRONIC, ACUTE, CONGENITAL, ...
    status = Column(String(32), nullable=False)  # ACTIVE, MANAGED, RESOLVED, IN_REMISSION
    icd_code = Column(String(16), nullable=True)
    severity = Column(String(32), nullable=True)  # MILD, MODERATE, SEVERE, CRITICAL
    diagnosed_date = Column(DateTime, nullable=True)
    resolved_date = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    patient = relationship("Patient")


class IcdCode(Base):
    __tablename__ = "icd_codes"

    id = Column(String(64), primary_key=True, default=new_id)
    code = Column(String(16), nullable=False, unique=True)
    description = Column(String(255), nullable=False)


class Diagnosis(Base):
    """Point-in-time diagnosis recorded during an appointment"""
    __tablename__ = "diagnoses"

    id = Column(String(64), primary_key=True, default=new_id)
    appointment_id = Column(String(64), ForeignKey("appointments.id"), nullable=False, index=True)
    icd_code_id = Column(String(64), ForeignKey("icd_codes.id"), nullable=True)
    is_primary = Column(Boolean, default=False, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    appointment = relationship("Appointment", back_populates="diagnoses")
    icd_code = relationship("IcdCode")


class PatientAllergy(Base):
    __tablename__ = "patient_allergies"

    id = Column(String(64), primary_key=True, default=new_id)
    patient_id = Column(String(64), ForeignKey("patients.id"), nullable=False, index=True)
    allergen = Column(String(255), nullable=False)
    allergy_type = Column(String(32), nullable=False)  # DRUG, FOOD, ENVIRONMENTAL, LATEX, ...
    severity = Column(String(32), nullable=False)  # MILD, MODERATE, SEVERE, LIFE_THREATENING
    reaction = Column(Text, nullable=True)
    is_verified = Column(Boolean, default=False, nullable=False)
    onset_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    patient = relationship("Patient")


class AccessToken(Base):
    """Bearer token issued to a clinic user; only the hash is stored"""
    __tablename__ = "access_tokens"

    id = Column(String(64), primary_key=True, default=new_id)
    token_hash = Column(String(64), unique=True, index=True, nullable=False)
    user_id = Column(String(64), nullable=False)
    clinic_id = Column(String(64), ForeignKey("clinics.id"), nullable=False)
    role = Column(String(32), nullable=False, default="DOCTOR")
    revoked = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    @staticmethod
    def hash_token(token: str) -> str:
        """Create the lookup hash for a raw bearer token"""
        return hashlib.sha256(token.encode()).hexdigest()
