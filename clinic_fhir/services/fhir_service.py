"""
FHIR Export Service

Main service for projecting a clinic's records into FHIR R4 resources.

Orchestrates:
1. Tenant-scoped record reads (ClinicalRecordRepository)
2. Per-resource mapping (Patient, Observation, MedicationRequest,
   Condition, AllergyIntolerance)
3. Conformance check of each resource, and of the assembled Bundle, against
   the fhir.resources R4B models (logged, or fatal in strict mode)
4. Bundle assembly with concurrent fan-out of the clinical queries

Each public method reads with its own session inside a worker thread, so the
bundle's four clinical reads run in parallel without sharing a session.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

from sqlalchemy.orm import Session

from ..config import Settings, settings as default_settings
from ..database import SessionLocal
from ..fhir.bundler import FHIRBundler, as_ccd_document
from ..fhir.codes import CodeTables, DEFAULT_CODE_TABLES
from ..fhir.conditions import ClinicalCondition, LongitudinalCondition, EncounterDiagnosis
from ..fhir.mappers import (
    PatientMapper,
    ObservationMapper,
    MedicationRequestMapper,
    ConditionMapper,
    AllergyIntoleranceMapper,
)
from ..fhir.validation import ResourceValidationError, validate_resource
from ..repository import ClinicalRecordRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")
Resource = Dict[str, Any]


class PatientNotFoundError(LookupError):
    """Patient id does not resolve inside the caller's clinic."""

    def __init__(self, patient_id: str):
        self.patient_id = patient_id
        super().__init__(f"Patient {patient_id} not found")


class FHIRService:
    """
    Read-only FHIR facade over the clinic data store.

    Usage:
        service = FHIRService()
        bundle = await service.get_patient_bundle(patient_id, clinic_id)
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        codes: CodeTables = DEFAULT_CODE_TABLES,
        settings: Settings = default_settings,
    ):
        self.session_factory = session_factory
        self.settings = settings
        self.patient_mapper = PatientMapper(codes)
        self.observation_mapper = ObservationMapper(codes)
        self.medication_mapper = MedicationRequestMapper(codes)
        self.condition_mapper = ConditionMapper(codes)
        self.allergy_mapper = AllergyIntoleranceMapper(codes)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_patient_resource(self, patient_id: str, clinic_id: str) -> Resource:
        """
        Map a patient to a FHIR Patient resource.

        Raises:
            PatientNotFoundError: If the patient is absent or belongs to another clinic
        """
        return await self._run(self._patient_resource, patient_id, clinic_id)

    async def get_vital_sign_observations(
        self,
        patient_id: str,
        clinic_id: str,
        appointment_id: Optional[str] = None,
    ) -> List[Resource]:
        """Map recent vitals snapshots to Observations, newest snapshot first."""
        return await self._run(self._vital_sign_observations, patient_id, clinic_id, appointment_id)

    async def get_medication_requests(self, patient_id: str, clinic_id: str) -> List[Resource]:
        """Map recent prescriptions to MedicationRequests, one per medication line."""
        return await self._run(self._medication_requests, patient_id, clinic_id)

    async def get_conditions(self, patient_id: str, clinic_id: str) -> List[Resource]:
        """Map problem-list conditions, then ICD-coded encounter diagnoses."""
        return await self._run(self._conditions, patient_id, clinic_id)

    async def get_allergy_intolerances(self, patient_id: str, clinic_id: str) -> List[Resource]:
        return await self._run(self._allergy_intolerances, patient_id, clinic_id)

    async def get_patient_bundle(self, patient_id: str, clinic_id: str) -> Resource:
        """
        Assemble every resource for one patient into a collection Bundle.

        The Patient is resolved first; when it is not found nothing else is
        queried. The four clinical queries then run concurrently and the
        bundle fails as a whole if any of them fails.

        Returns:
            Bundle with Patient, Observations, MedicationRequests,
            Conditions and AllergyIntolerances, in that order
        """
        patient = await self.get_patient_resource(patient_id, clinic_id)

        observations, medication_requests, conditions, allergies = await asyncio.gather(
            self.get_vital_sign_observations(patient_id, clinic_id),
            self.get_medication_requests(patient_id, clinic_id),
            self.get_conditions(patient_id, clinic_id),
            self.get_allergy_intolerances(patient_id, clinic_id),
        )

        bundler = FHIRBundler()
        bundler.add_resource(patient)
        bundler.add_resources(observations)
        bundler.add_resources(medication_requests)
        bundler.add_resources(conditions)
        bundler.add_resources(allergies)

        bundle = await asyncio.to_thread(self._checked, bundler.build(f"patient-bundle-{patient_id}"))
        logger.info(
            "Assembled bundle for patient %s: %d resources (%d observations, %d medication requests, "
            "%d conditions, %d allergies)",
            patient_id,
            bundler.resource_count,
            len(observations),
            len(medication_requests),
            len(conditions),
            len(allergies),
        )
        return bundle

    async def export_ccd(self, patient_id: str, clinic_id: str) -> Resource:
        """Patient bundle re-labelled as a CCD document."""
        bundle = await self.get_patient_bundle(patient_id, clinic_id)
        return await asyncio.to_thread(self._checked, as_ccd_document(bundle, patient_id))

    # ------------------------------------------------------------------
    # Synchronous mapping, executed in worker threads
    # ------------------------------------------------------------------

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        def work() -> T:
            with self.session_factory() as db:
                return fn(ClinicalRecordRepository(db), *args)

        return await asyncio.to_thread(work)

    def _patient_resource(self, repo: ClinicalRecordRepository, patient_id: str, clinic_id: str) -> Resource:
        patient = repo.get_patient(patient_id, clinic_id)
        if patient is None:
            logger.warning("Patient %s not found for clinic %s", patient_id, clinic_id)
            raise PatientNotFoundError(patient_id)
        return self._checked(self.patient_mapper.map(patient))

    def _vital_sign_observations(
        self,
        repo: ClinicalRecordRepository,
        patient_id: str,
        clinic_id: str,
        appointment_id: Optional[str],
    ) -> List[Resource]:
        vitals = repo.list_vital_signs(
            patient_id,
            clinic_id,
            appointment_id=appointment_id,
            limit=self.settings.vital_snapshot_limit,
        )
        observations = []
        for vital in vitals:
            observations.extend(self.observation_mapper.map_vital_signs(vital))
        return self._checked_all(observations)

    def _medication_requests(self, repo: ClinicalRecordRepository, patient_id: str, clinic_id: str) -> List[Resource]:
        prescriptions = repo.list_prescriptions(patient_id, clinic_id, limit=self.settings.prescription_limit)
        requests = []
        for prescription in prescriptions:
            requests.extend(self.medication_mapper.map_prescription(prescription))
        return self._checked_all(requests)

    def _conditions(self, repo: ClinicalRecordRepository, patient_id: str, clinic_id: str) -> List[Resource]:
        clinical_conditions: List[ClinicalCondition] = [
            LongitudinalCondition.from_record(record)
            for record in repo.list_medical_conditions(patient_id, clinic_id)
        ]
        for record in repo.list_diagnoses(patient_id, clinic_id):
            diagnosis = EncounterDiagnosis.from_record(record)
            if diagnosis is not None:
                clinical_conditions.append(diagnosis)

        return self._checked_all([
            self.condition_mapper.map(condition, patient_id)
            for condition in clinical_conditions
        ])

    def _allergy_intolerances(self, repo: ClinicalRecordRepository, patient_id: str, clinic_id: str) -> List[Resource]:
        return self._checked_all([
            self.allergy_mapper.map(allergy)
            for allergy in repo.list_allergies(patient_id, clinic_id)
        ])

    def _checked(self, resource: Resource) -> Resource:
        """
        Validate a produced resource when enabled.

        Stored free text can be malformed without making the data unusable,
        so a failure is logged and the resource is still returned unless
        strict validation is configured.
        """
        if not self.settings.validate_resources:
            return resource
        try:
            validate_resource(resource)
        except ResourceValidationError as e:
            if self.settings.strict_validation:
                raise
            logger.warning(
                "%s/%s failed FHIR validation: %s", e.resource_type, e.resource_id, e.reason
            )
        return resource

    def _checked_all(self, resources: List[Resource]) -> List[Resource]:
        return [self._checked(resource) for resource in resources]
