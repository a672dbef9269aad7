"""
Shared fixtures: a throwaway SQLite database and a small builder for
clinic records. DATABASE_URL must be set before clinic_fhir is imported.
"""
import os
import tempfile
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

TEST_DB_PATH = os.path.join(tempfile.gettempdir(), "test_clinic_fhir.db")
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB_PATH}"
os.environ["LOG_LEVEL"] = "WARNING"

from clinic_fhir import models
from clinic_fhir.database import Base, SessionLocal, engine

BASE_TIME = datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)

CLINIC_TOKEN = "token-clinic-a"
OTHER_CLINIC_TOKEN = "token-clinic-b"


class ClinicRecords:
    """Inserts clinic records with predictable ids and timestamps."""

    def __init__(self, db):
        self.db = db
        self._counter = 0

    def _tick(self) -> datetime:
        self._counter += 1
        return BASE_TIME + timedelta(minutes=self._counter)

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        return obj

    def clinic(self, clinic_id: str, name: str = None) -> models.Clinic:
        return self._save(models.Clinic(id=clinic_id, name=name or clinic_id))

    def doctor(self, doctor_id: str, clinic_id: str, name: str = "Dr. Asha Rao") -> models.Doctor:
        return self._save(models.Doctor(id=doctor_id, clinic_id=clinic_id, name=name))

    def token(self, raw: str, clinic_id: str, user_id: str = "user-1", revoked: bool = False) -> models.AccessToken:
        return self._save(models.AccessToken(
            token_hash=models.AccessToken.hash_token(raw),
            user_id=user_id,
            clinic_id=clinic_id,
            role="DOCTOR",
            revoked=revoked,
        ))

    def patient(self, patient_id: str, clinic_id: str, **fields) -> models.Patient:
        values = dict(
            first_name="Maria",
            last_name="Lopez",
            date_of_birth=date(1980, 5, 15),
            gender="FEMALE",
            created_at=BASE_TIME,
            updated_at=BASE_TIME,
        )
        values.update(fields)
        return self._save(models.Patient(id=patient_id, clinic_id=clinic_id, **values))

    def appointment(self, appointment_id: str, patient: models.Patient, doctor_id: str = None) -> models.Appointment:
        return self._save(models.Appointment(
            id=appointment_id,
            clinic_id=patient.clinic_id,
            patient_id=patient.id,
            doctor_id=doctor_id,
            start_time=self._tick(),
        ))

    def vitals(self, vital_id: str, appointment: models.Appointment, **measurements) -> models.VitalSign:
        return self._save(models.VitalSign(
            id=vital_id,
            appointment_id=appointment.id,
            created_at=self._tick(),
            **measurements,
        ))

    def prescription(self, prescription_id: str, appointment: models.Appointment, doctor_id: str,
                     medications=()) -> models.Prescription:
        prescription = self._save(models.Prescription(
            id=prescription_id,
            patient_id=appointment.patient_id,
            appointment_id=appointment.id,
            doctor_id=doctor_id,
            created_at=self._tick(),
        ))
        for med in medications:
            values = dict(dosage="20mg", route="PO", frequency="once daily", duration="30 days")
            values.update(med)
            self._save(models.Medication(prescription_id=prescription.id, created_at=self._tick(), **values))
        return prescription

    def condition(self, condition_id: str, patient: models.Patient, **fields) -> models.PatientMedicalCondition:
        values = dict(condition_name="Hypertension", condition_type="CHRONIC", status="ACTIVE")
        values.update(fields)
        return self._save(models.PatientMedicalCondition(
            id=condition_id, patient_id=patient.id, created_at=self._tick(), **values
        ))

    def icd(self, code: str, description: str) -> models.IcdCode:
        return self._save(models.IcdCode(id=f"icd-{code}", code=code, description=description))

    def diagnosis(self, diagnosis_id: str, appointment: models.Appointment, icd: models.IcdCode = None,
                  is_primary: bool = False, notes: str = None) -> models.Diagnosis:
        return self._save(models.Diagnosis(
            id=diagnosis_id,
            appointment_id=appointment.id,
            icd_code_id=icd.id if icd else None,
            is_primary=is_primary,
            notes=notes,
            created_at=self._tick(),
        ))

    def allergy(self, allergy_id: str, patient: models.Patient, **fields) -> models.PatientAllergy:
        values = dict(allergen="Penicillin", allergy_type="DRUG", severity="SEVERE")
        values.update(fields)
        return self._save(models.PatientAllergy(
            id=allergy_id, patient_id=patient.id, created_at=self._tick(), **values
        ))


@pytest.fixture
def db():
    """Fresh schema for every test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def records(db):
    return ClinicRecords(db)


@pytest.fixture
def tenants(records):
    """Two clinics, each with a doctor, a patient and an access token."""
    records.clinic("clinic-a", "Clinic A")
    records.clinic("clinic-b", "Clinic B")
    records.doctor("doctor-a", "clinic-a")
    records.doctor("doctor-b", "clinic-b", name="Dr. Ben Okafor")
    records.token(CLINIC_TOKEN, "clinic-a")
    records.token(OTHER_CLINIC_TOKEN, "clinic-b", user_id="user-2")
    patient = records.patient("patient-a", "clinic-a", mrn="MRN-001")
    other_patient = records.patient("patient-b", "clinic-b", first_name="John", last_name="Doe", gender="MALE")
    return SimpleNamespace(
        clinic_id="clinic-a",
        other_clinic_id="clinic-b",
        doctor_id="doctor-a",
        patient=patient,
        other_patient=other_patient,
        token=CLINIC_TOKEN,
        other_token=OTHER_CLINIC_TOKEN,
    )
