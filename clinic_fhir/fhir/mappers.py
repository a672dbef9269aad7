"""
FHIR Resource Mappers

Maps clinic records to FHIR R4 resources. Each mapper is a pure function of
its input records and the injected code tables; nothing here touches the
database.

Mappings:
- Patient → Patient
- VitalSign → Observation (vital-signs), up to nine per snapshot
- Prescription/Medication → MedicationRequest, one per medication line
- LongitudinalCondition / EncounterDiagnosis → Condition
- PatientAllergy → AllergyIntolerance

Resources are returned as plain JSON-ready dictionaries; optional elements
are left out entirely when the source field is empty.
"""
import re
from typing import List, Dict, Any, Optional
from datetime import date, datetime, timezone

from .. import models
from .codes import (
    CodeTables,
    DEFAULT_CODE_TABLES,
    VitalSignCode,
    LOINC,
    SNOMED_CT,
    UCUM,
    ICD_10,
    NDC,
    RXNORM,
    BCP_47,
    V2_IDENTIFIER_TYPE,
    V2_CONTACT_ROLE,
    OBSERVATION_CATEGORY,
    CONDITION_CLINICAL,
    CONDITION_VER_STATUS,
    CONDITION_CATEGORY,
    ALLERGY_CLINICAL,
    ALLERGY_VERIFICATION,
    US_CORE_PATIENT,
    US_CORE_RACE,
    US_CORE_ETHNICITY,
)
from .conditions import ClinicalCondition, LongitudinalCondition, EncounterDiagnosis


def fhir_instant(value: datetime) -> str:
    """
    Render a datetime as a FHIR instant, e.g. ``2024-03-15T09:30:00.000Z``.

    Naive datetimes are taken to be UTC (SQLite drops tzinfo on the way back).
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def fhir_date(value: date) -> str:
    """Calendar date only; any time component is dropped."""
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def coding(system: str, code: str, display: str) -> Dict[str, str]:
    return {"system": system, "code": code, "display": display}


def reference(resource_type: str, resource_id: str, display: str = None) -> Dict[str, str]:
    ref = {"reference": f"{resource_type}/{resource_id}"}
    if display:
        ref["display"] = display
    return ref


# FHIR `code` datatype: no leading/trailing whitespace, single inner spaces
CODE_TOKEN = re.compile(r"^[^\s]+( [^\s]+)*$")


def code_token(value: Optional[str]) -> Optional[str]:
    """
    Normalize a free-text column that ends up in a ``code`` element.

    Surrounding whitespace is stripped. Returns None when what remains is
    still not a valid code, so callers keep the text and drop the coding.
    """
    if value is None:
        return None
    value = value.strip()
    return value if CODE_TOKEN.match(value) else None


class PatientMapper:
    """Maps a Patient record to a FHIR Patient resource."""

    def __init__(self, codes: CodeTables = DEFAULT_CODE_TABLES):
        self.codes = codes

    def map(self, patient: models.Patient) -> Dict[str, Any]:
        """
        Convert a patient record to a FHIR Patient resource.

        Args:
            patient: Tenant-scoped patient record

        Returns:
            FHIR Patient resource as a dictionary
        """
        patient_dict = {
            "resourceType": "Patient",
            "id": patient.id,
            "meta": {
                "lastUpdated": fhir_instant(patient.updated_at or patient.created_at),
                "profile": [US_CORE_PATIENT],
            },
            "active": True,
            "name": [{
                "use": "official",
                "family": patient.last_name,
                "given": [patient.first_name],
            }],
            "gender": self.codes.gender(patient.gender),
            "birthDate": fhir_date(patient.date_of_birth),
        }
        identifiers = []
        telecom = []
        extensions = []

        # Medical record number
        if patient.mrn:
            identifiers.append({
                "use": "usual",
                "type": {
                    "coding": [coding(V2_IDENTIFIER_TYPE, "MR", "Medical Record Number")]
                },
                "value": patient.mrn,
            })

        if patient.phone_number:
            telecom.append({
                "system": "phone",
                "value": patient.phone_number,
                "use": "mobile",
            })

        if patient.email:
            telecom.append({
                "system": "email",
                "value": patient.email,
                "use": "home",
            })

        if patient.address:
            patient_dict["address"] = [{"use": "home", "text": patient.address}]

        # US Core race/ethnicity, carried as free text rather than coded values
        if patient.race:
            extensions.append({
                "url": US_CORE_RACE,
                "valueString": patient.race,
            })

        if patient.ethnicity:
            extensions.append({
                "url": US_CORE_ETHNICITY,
                "valueString": patient.ethnicity,
            })

        if patient.preferred_language and patient.preferred_language.strip():
            language = code_token(patient.preferred_language)
            if language:
                concept = {"coding": [coding(BCP_47, language, language)]}
            else:
                concept = {"text": patient.preferred_language.strip()}
            patient_dict["communication"] = [{
                "language": concept,
                "preferred": True,
            }]

        if patient.emergency_contact_name:
            contact = {
                "relationship": [{
                    "coding": [coding(
                        V2_CONTACT_ROLE,
                        "C",
                        patient.emergency_contact_relation or "Emergency Contact",
                    )]
                }],
                "name": {"family": patient.emergency_contact_name},
            }
            if patient.emergency_contact_phone:
                contact["telecom"] = [{
                    "system": "phone",
                    "value": patient.emergency_contact_phone,
                    "use": "mobile",
                }]
            patient_dict["contact"] = [contact]

        # Empty arrays are not valid FHIR JSON
        if identifiers:
            patient_dict["identifier"] = identifiers
        if telecom:
            patient_dict["telecom"] = telecom
        if extensions:
            patient_dict["extension"] = extensions

        return patient_dict


class ObservationMapper:
    """Maps VitalSign snapshots to FHIR Observation resources."""

    def __init__(self, codes: CodeTables = DEFAULT_CODE_TABLES):
        self.codes = codes

    def map_vital_signs(self, vital: models.VitalSign) -> List[Dict[str, Any]]:
        """
        Convert one vitals snapshot to Observation resources.

        Blood pressure is emitted only when both systolic and diastolic are
        recorded. Every other field becomes its own Observation when present.

        Args:
            vital: VitalSign record with its appointment and patient loaded

        Returns:
            List of Observation resources, possibly empty
        """
        appointment = vital.appointment
        context = {
            "subject": reference("Patient", appointment.patient_id, appointment.patient.display_name),
            "encounter": reference("Encounter", vital.appointment_id),
            "effectiveDateTime": fhir_instant(appointment.start_time),
        }

        observations = []

        bp = self.codes.blood_pressure
        if vital.systolic_bp is not None and vital.diastolic_bp is not None:
            obs = self._base(f"{vital.id}-{bp.id_suffix}", bp.panel, bp.panel_display, bp.text, context)
            obs["component"] = [
                {
                    "code": {"coding": [coding(LOINC, bp.systolic, bp.systolic_display)]},
                    "valueQuantity": self._quantity(vital.systolic_bp, bp.unit, bp.ucum),
                },
                {
                    "code": {"coding": [coding(LOINC, bp.diastolic, bp.diastolic_display)]},
                    "valueQuantity": self._quantity(vital.diastolic_bp, bp.unit, bp.ucum),
                },
            ]
            observations.append(obs)

        for definition in self.codes.vital_signs:
            value = getattr(vital, definition.field)
            if value is None:
                continue
            observations.append(self._single_value(vital.id, definition, value, context))

        return observations

    def _single_value(
        self,
        vital_id: str,
        definition: VitalSignCode,
        value: float,
        context: Dict[str, Any]
    ) -> Dict[str, Any]:
        obs = self._base(
            f"{vital_id}-{definition.id_suffix}",
            definition.loinc,
            definition.display,
            definition.text,
            context,
        )
        obs["valueQuantity"] = self._quantity(value, definition.unit, definition.ucum)
        return obs

    @staticmethod
    def _base(
        resource_id: str,
        loinc_code: str,
        display: str,
        text: str,
        context: Dict[str, Any]
    ) -> Dict[str, Any]:
        return {
            "resourceType": "Observation",
            "id": resource_id,
            "status": "final",
            "category": [{
                "coding": [coding(OBSERVATION_CATEGORY, "vital-signs", "Vital Signs")]
            }],
            "code": {
                "coding": [coding(LOINC, loinc_code, display)],
                "text": text,
            },
            "subject": dict(context["subject"]),
            "encounter": dict(context["encounter"]),
            "effectiveDateTime": context["effectiveDateTime"],
        }

    @staticmethod
    def _quantity(value: float, unit: str, ucum_code: str) -> Dict[str, Any]:
        return {
            "value": value,
            "unit": unit,
            "system": UCUM,
            "code": ucum_code,
        }


class MedicationRequestMapper:
    """Maps prescription medication lines to FHIR MedicationRequest resources."""

    def __init__(self, codes: CodeTables = DEFAULT_CODE_TABLES):
        self.codes = codes

    def map_prescription(self, prescription: models.Prescription) -> List[Dict[str, Any]]:
        """One MedicationRequest per medication line, in stored order."""
        return [self.map(prescription, med) for med in prescription.medications]

    def map(self, prescription: models.Prescription, med: models.Medication) -> Dict[str, Any]:
        """
        Convert a single medication line to a MedicationRequest.

        Status and intent are fixed at active/order: the clinic model has no
        fulfillment lifecycle to derive them from.

        Args:
            prescription: Parent prescription with patient and doctor loaded
            med: Medication line

        Returns:
            FHIR MedicationRequest resource as a dictionary
        """
        med_dict = {
            "resourceType": "MedicationRequest",
            "id": med.id,
            "status": "active",
            "intent": "order",
            "medicationCodeableConcept": {
                "coding": [],
                "text": med.name,
            },
            "subject": reference("Patient", prescription.patient_id, prescription.patient.display_name),
            "encounter": reference("Encounter", prescription.appointment_id),
            "authoredOn": fhir_instant(prescription.created_at),
            "requester": reference("Practitioner", prescription.doctor_id, prescription.doctor.name),
            "dosageInstruction": [{
                "text": f"{med.dosage} {med.route} {med.frequency} for {med.duration}",
                "route": {
                    "coding": [coding(SNOMED_CT, self.codes.route_code(med.route), med.route)]
                },
            }],
        }

        codings = med_dict["medicationCodeableConcept"]["coding"]
        ndc = code_token(med.ndc_code)
        if ndc:
            codings.append(coding(NDC, ndc, med.name))
        rxcui = code_token(med.rxnorm_cui)
        if rxcui:
            codings.append(coding(RXNORM, rxcui, med.name))

        # Add dispense request if quantity or refills present
        dispense_request = {}
        if med.quantity is not None:
            dispense_request["quantity"] = {"value": med.quantity, "unit": "units"}
        if med.refills_allowed is not None:
            dispense_request["numberOfRepeatsAllowed"] = med.refills_allowed

        if dispense_request:
            med_dict["dispenseRequest"] = dispense_request

        return med_dict


class ConditionMapper:
    """Maps both clinical condition variants to FHIR Condition resources."""

    def __init__(self, codes: CodeTables = DEFAULT_CODE_TABLES):
        self.codes = codes

    def map(self, condition: ClinicalCondition, patient_id: str) -> Dict[str, Any]:
        """
        Convert a clinical condition to a FHIR Condition resource.

        Args:
            condition: LongitudinalCondition or EncounterDiagnosis
            patient_id: Patient the condition belongs to

        Returns:
            FHIR Condition resource as a dictionary
        """
        if isinstance(condition, LongitudinalCondition):
            return self._map_longitudinal(condition, patient_id)
        if isinstance(condition, EncounterDiagnosis):
            return self._map_diagnosis(condition, patient_id)
        raise TypeError(f"Unsupported condition variant: {type(condition).__name__}")

    def _map_longitudinal(self, condition: LongitudinalCondition, patient_id: str) -> Dict[str, Any]:
        icd_code = code_token(condition.icd_code)
        condition_dict = self._base(
            condition.id,
            clinical_status=coding(
                CONDITION_CLINICAL, self.codes.condition_status(condition.status), condition.status
            ),
            category=coding(
                CONDITION_CATEGORY,
                self.codes.condition_category(condition.condition_type),
                condition.condition_type,
            ),
            codings=[coding(ICD_10, icd_code, condition.name)] if icd_code else [],
            text=condition.name,
            subject=reference("Patient", patient_id, condition.patient_display),
            recorded_at=condition.recorded_at,
        )

        if condition.onset_at:
            condition_dict["onsetDateTime"] = fhir_instant(condition.onset_at)

        if condition.abated_at:
            condition_dict["abatementDateTime"] = fhir_instant(condition.abated_at)

        if condition.severity:
            condition_dict["severity"] = {
                "coding": [coding(SNOMED_CT, self.codes.severity_code(condition.severity), condition.severity)]
            }

        if condition.notes:
            condition_dict["note"] = [{"text": condition.notes}]

        return condition_dict

    def _map_diagnosis(self, diagnosis: EncounterDiagnosis, patient_id: str) -> Dict[str, Any]:
        if diagnosis.is_primary:
            category = coding(CONDITION_CATEGORY, "problem-list-item", "Problem List Item")
        else:
            category = coding(CONDITION_CATEGORY, "encounter-diagnosis", "Encounter Diagnosis")

        icd_code = code_token(diagnosis.icd_code)
        condition_dict = self._base(
            diagnosis.id,
            clinical_status=coding(CONDITION_CLINICAL, "active", "Active"),
            category=category,
            codings=[coding(ICD_10, icd_code, diagnosis.icd_description)] if icd_code else [],
            text=diagnosis.icd_description,
            subject=reference("Patient", patient_id, diagnosis.patient_display),
            recorded_at=diagnosis.recorded_at,
        )
        condition_dict["encounter"] = reference("Encounter", diagnosis.encounter_id)

        if diagnosis.notes:
            condition_dict["note"] = [{"text": diagnosis.notes}]

        return condition_dict

    @staticmethod
    def _base(
        resource_id: str,
        clinical_status: Dict[str, str],
        category: Dict[str, str],
        codings: List[Dict[str, str]],
        text: str,
        subject: Dict[str, str],
        recorded_at: datetime,
    ) -> Dict[str, Any]:
        return {
            "resourceType": "Condition",
            "id": resource_id,
            "clinicalStatus": {"coding": [clinical_status]},
            "verificationStatus": {
                "coding": [coding(CONDITION_VER_STATUS, "confirmed", "Confirmed")]
            },
            "category": [{"coding": [category]}],
            "code": {"coding": codings, "text": text},
            "subject": subject,
            "recordedDate": fhir_instant(recorded_at),
        }


class AllergyIntoleranceMapper:
    """Maps PatientAllergy records to FHIR AllergyIntolerance resources."""

    def __init__(self, codes: CodeTables = DEFAULT_CODE_TABLES):
        self.codes = codes

    def map(self, allergy: models.PatientAllergy) -> Dict[str, Any]:
        verification = "confirmed" if allergy.is_verified else "unconfirmed"

        allergy_dict = {
            "resourceType": "AllergyIntolerance",
            "id": allergy.id,
            "clinicalStatus": {
                "coding": [coding(ALLERGY_CLINICAL, "active", "Active")]
            },
            "verificationStatus": {
                "coding": [coding(ALLERGY_VERIFICATION, verification, verification.capitalize())]
            },
            "type": "allergy",
            "category": [self.codes.allergy_category(allergy.allergy_type)],
            "criticality": self.codes.allergy_criticality(allergy.severity),
            "code": {"coding": [], "text": allergy.allergen},
            "patient": reference("Patient", allergy.patient_id, allergy.patient.display_name),
            "recordedDate": fhir_instant(allergy.created_at),
        }

        if allergy.onset_date:
            allergy_dict["onsetDateTime"] = fhir_instant(allergy.onset_date)

        # Manifestation is free text only
        if allergy.reaction:
            allergy_dict["reaction"] = [{
                "manifestation": [{"coding": [], "text": allergy.reaction}],
                "severity": self.codes.reaction_severity(allergy.severity),
            }]

        return allergy_dict
