"""
Tenant-scoped read access to clinical records.

Every query here filters on the caller's clinic, either directly on the
patient or through the appointment a record hangs off. A record that exists
under another clinic is indistinguishable from one that does not exist.
"""
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload, selectinload

from . import models


class ClinicalRecordRepository:
    """Read-only queries for the FHIR export, bound to one session."""

    def __init__(self, db: Session):
        self.db = db

    def get_patient(self, patient_id: str, clinic_id: str) -> Optional[models.Patient]:
        return self.db.query(models.Patient).filter(
            models.Patient.id == patient_id,
            models.Patient.clinic_id == clinic_id,
        ).first()

    def list_vital_signs(
        self,
        patient_id: str,
        clinic_id: str,
        appointment_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[models.VitalSign]:
        """Newest snapshots first, at most ``limit`` of them."""
        query = (
            self.db.query(models.VitalSign)
            .join(models.VitalSign.appointment)
            .filter(
                models.Appointment.patient_id == patient_id,
                models.Appointment.clinic_id == clinic_id,
            )
            .options(joinedload(models.VitalSign.appointment).joinedload(models.Appointment.patient))
        )
        if appointment_id:
            query = query.filter(models.VitalSign.appointment_id == appointment_id)

        return query.order_by(models.VitalSign.created_at.desc()).limit(limit).all()

    def list_prescriptions(self, patient_id: str, clinic_id: str, limit: int = 100) -> List[models.Prescription]:
        """Newest prescriptions first, at most ``limit`` of them, medication lines preloaded."""
        return (
            self.db.query(models.Prescription)
            .join(models.Prescription.appointment)
            .filter(
                models.Prescription.patient_id == patient_id,
                models.Appointment.clinic_id == clinic_id,
            )
            .options(
                selectinload(models.Prescription.medications),
                joinedload(models.Prescription.patient),
                joinedload(models.Prescription.doctor),
            )
            .order_by(models.Prescription.created_at.desc())
            .limit(limit)
            .all()
        )

    def list_medical_conditions(self, patient_id: str, clinic_id: str) -> List[models.PatientMedicalCondition]:
        return (
            self.db.query(models.PatientMedicalCondition)
            .join(models.PatientMedicalCondition.patient)
            .filter(
                models.PatientMedicalCondition.patient_id == patient_id,
                models.Patient.clinic_id == clinic_id,
            )
            .options(joinedload(models.PatientMedicalCondition.patient))
            .order_by(models.PatientMedicalCondition.created_at)
            .all()
        )

    def list_diagnoses(self, patient_id: str, clinic_id: str) -> List[models.Diagnosis]:
        return (
            self.db.query(models.Diagnosis)
            .join(models.Diagnosis.appointment)
            .filter(
                models.Appointment.patient_id == patient_id,
                models.Appointment.clinic_id == clinic_id,
            )
            .options(
                joinedload(models.Diagnosis.icd_code),
                joinedload(models.Diagnosis.appointment).joinedload(models.Appointment.patient),
            )
            .order_by(models.Diagnosis.created_at)
            .all()
        )

    def list_allergies(self, patient_id: str, clinic_id: str) -> List[models.PatientAllergy]:
        return (
            self.db.query(models.PatientAllergy)
            .join(models.PatientAllergy.patient)
            .filter(
                models.PatientAllergy.patient_id == patient_id,
                models.Patient.clinic_id == clinic_id,
            )
            .options(joinedload(models.PatientAllergy.patient))
            .order_by(models.PatientAllergy.created_at)
            .all()
        )

    def get_access_token(self, token: str) -> Optional[models.AccessToken]:
        """Active (non-revoked) token record for a raw bearer token."""
        return self.db.query(models.AccessToken).filter(
            models.AccessToken.token_hash == models.AccessToken.hash_token(token),
            models.AccessToken.revoked.is_(False),
        ).first()
