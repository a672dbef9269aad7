"""
Clinical condition variants.

Conditions come from two places in the clinic data model: the longitudinal
problem list (``PatientMedicalCondition``) and diagnoses recorded during an
appointment (``Diagnosis``). Both become FHIR Condition resources, so they
are normalized into one of two tagged variants before mapping.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from .. import models


@dataclass(frozen=True)
class LongitudinalCondition:
    """Problem-list entry tracked across visits."""
    id: str
    name: str
    condition_type: str
    status: str
    recorded_at: datetime
    patient_display: str
    icd_code: Optional[str] = None
    severity: Optional[str] = None
    onset_at: Optional[datetime] = None
    abated_at: Optional[datetime] = None
    notes: Optional[str] = None

    @classmethod
    def from_record(cls, record: models.PatientMedicalCondition) -> "LongitudinalCondition":
        return cls(
            id=record.id,
            name=record.condition_name,
            condition_type=record.condition_type,
            status=record.status,
            recorded_at=record.created_at,
            patient_display=record.patient.display_name,
            icd_code=record.icd_code,
            severity=record.severity,
            onset_at=record.diagnosed_date,
            abated_at=record.resolved_date,
            notes=record.notes,
        )


@dataclass(frozen=True)
class EncounterDiagnosis:
    """ICD-coded diagnosis made during a single appointment."""
    id: str
    encounter_id: str
    icd_code: str
    icd_description: str
    is_primary: bool
    recorded_at: datetime
    patient_display: str
    notes: Optional[str] = None

    @classmethod
    def from_record(cls, record: models.Diagnosis) -> Optional["EncounterDiagnosis"]:
        """Returns None for diagnoses without an ICD code; those are never exported."""
        if record.icd_code is None:
            return None
        return cls(
            id=record.id,
            encounter_id=record.appointment.id,
            icd_code=record.icd_code.code,
            icd_description=record.icd_code.description,
            is_primary=bool(record.is_primary),
            recorded_at=record.created_at,
            patient_display=record.appointment.patient.display_name,
            notes=record.notes,
        )


ClinicalCondition = Union[LongitudinalCondition, EncounterDiagnosis]
