"""
FHIR Code Tables

Read-only lookup tables translating the clinic's internal enumerations into
standard terminologies:

- Gender → FHIR administrative-gender
- Medication route → SNOMED CT route of administration
- Condition status / type → HL7 condition-clinical / condition-category
- Condition severity → SNOMED CT severity
- Allergy type / severity → AllergyIntolerance category / criticality
- Vital-sign fields → LOINC + UCUM

Every lookup has a conservative fallback, so an unrecognized internal value
never prevents a resource from being produced. Alternative tables can be
built with ``dataclasses.replace`` and handed to the mappers.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple


# Code systems
LOINC = "http://loinc.org"
SNOMED_CT = "http://snomed.info/sct"
UCUM = "http://unitsofmeasure.org"
ICD_10 = "http://hl7.org/fhir/sid/icd-10"
NDC = "http://hl7.org/fhir/sid/ndc"
RXNORM = "http://www.nlm.nih.gov/research/umls/rxnorm"
BCP_47 = "urn:ietf:bcp:47"
V2_IDENTIFIER_TYPE = "http://terminology.hl7.org/CodeSystem/v2-0203"
V2_CONTACT_ROLE = "http://terminology.hl7.org/CodeSystem/v2-0131"
OBSERVATION_CATEGORY = "http://terminology.hl7.org/CodeSystem/observation-category"
CONDITION_CLINICAL = "http://terminology.hl7.org/CodeSystem/condition-clinical"
CONDITION_VER_STATUS = "http://terminology.hl7.org/CodeSystem/condition-ver-status"
CONDITION_CATEGORY = "http://terminology.hl7.org/CodeSystem/condition-category"
ALLERGY_CLINICAL = "http://terminology.hl7.org/CodeSystem/allergyintolerance-clinical"
ALLERGY_VERIFICATION = "http://terminology.hl7.org/CodeSystem/allergyintolerance-verification"

# Profiles / extensions
US_CORE_PATIENT = "http://hl7.org/fhir/us/core/StructureDefinition/us-core-patient"
US_CORE_RACE = "http://hl7.org/fhir/us/core/StructureDefinition/us-core-race"
US_CORE_ETHNICITY = "http://hl7.org/fhir/us/core/StructureDefinition/us-core-ethnicity"
CCD_PROFILE = (
    "http://hl7.org/fhir/us/ccda/StructureDefinition/"
    "CCDA-on-FHIR-Continuity-of-Care-Document"
)


def _frozen(table: dict) -> Mapping[str, str]:
    return MappingProxyType(dict(table))


@dataclass(frozen=True)
class VitalSignCode:
    """LOINC/UCUM definition for one single-valued vital-sign field."""
    field: str
    id_suffix: str
    loinc: str
    display: str
    text: str
    unit: str
    ucum: str


@dataclass(frozen=True)
class BloodPressureCode:
    """Panel plus systolic/diastolic component codes."""
    id_suffix: str = "bp"
    panel: str = "85354-9"
    panel_display: str = "Blood pressure panel with all children optional"
    text: str = "Blood Pressure"
    systolic: str = "8480-6"
    systolic_display: str = "Systolic blood pressure"
    diastolic: str = "8462-4"
    diastolic_display: str = "Diastolic blood pressure"
    unit: str = "mmHg"
    ucum: str = "mm[Hg]"


# Emission order after blood pressure
DEFAULT_VITAL_SIGN_CODES: Tuple[VitalSignCode, ...] = (
    VitalSignCode("pulse", "hr", "8867-4", "Heart rate", "Heart Rate", "beats/minute", "/min"),
    VitalSignCode("temperature", "temp", "8310-5", "Body temperature", "Body Temperature", "Cel", "Cel"),
    VitalSignCode("spo2", "spo2", "2708-6", "Oxygen saturation in Arterial blood", "Oxygen Saturation", "%", "%"),
    VitalSignCode("respiratory_rate", "rr", "9279-1", "Respiratory rate", "Respiratory Rate", "breaths/minute", "/min"),
    VitalSignCode("height", "height", "8302-2", "Body height", "Height", "cm", "cm"),
    VitalSignCode("weight", "weight", "29463-7", "Body weight", "Weight", "kg", "kg"),
    VitalSignCode("bmi", "bmi", "39156-5", "Body mass index (BMI)", "BMI", "kg/m2", "kg/m2"),
    VitalSignCode("blood_glucose", "glucose", "2339-0", "Glucose [Mass/volume] in Blood", "Blood Glucose", "mg/dL", "mg/dL"),
)


@dataclass(frozen=True)
class CodeTables:
    """Immutable bundle of every internal-enum → terminology table."""

    genders: Mapping[str, str] = field(default_factory=lambda: _frozen({
        "MALE": "male",
        "FEMALE": "female",
        "OTHER": "other",
        "INTERSEX": "other",
        "NON_BINARY": "other",
        "PREFER_NOT_TO_SAY": "unknown",
    }))
    routes: Mapping[str, str] = field(default_factory=lambda: _frozen({
        "PO": "26643006",
        "IV": "47625008",
        "IM": "78421000",
        "SC": "34206005",
        "TOP": "6064005",
        "INH": "18679011000001101",
        "SL": "37839007",
        "NAS": "46713006",
        "OPH": "54485002",
        "OT": "10547007",
        "PR": "37161004",
        "TD": "45890007",
        "BUC": "372449004",
        "PV": "16857009",
        "NEB": "46713006",
    }))
    condition_statuses: Mapping[str, str] = field(default_factory=lambda: _frozen({
        "ACTIVE": "active",
        "MANAGED": "active",
        "RESOLVED": "resolved",
        "IN_REMISSION": "remission",
    }))
    condition_categories: Mapping[str, str] = field(default_factory=lambda: _frozen({
        "CHRONIC": "problem-list-item",
        "ACUTE": "encounter-diagnosis",
        "CONGENITAL": "problem-list-item",
        "INFECTIOUS": "encounter-diagnosis",
        "AUTOIMMUNE": "problem-list-item",
        "PSYCHIATRIC": "problem-list-item",
        "OTHER": "encounter-diagnosis",
    }))
    severities: Mapping[str, str] = field(default_factory=lambda: _frozen({
        "MILD": "255604002",
        "MODERATE": "6736007",
        "SEVERE": "24484000",
        "CRITICAL": "442452003",
    }))
    allergy_categories: Mapping[str, str] = field(default_factory=lambda: _frozen({
        "DRUG": "medication",
        "FOOD": "food",
        "ENVIRONMENTAL": "environment",
        "LATEX": "environment",
        "INSECT": "environment",
        "CONTRAST": "medication",
        "OTHER": "environment",
    }))
    allergy_criticalities: Mapping[str, str] = field(default_factory=lambda: _frozen({
        "MILD": "low",
        "MODERATE": "low",
        "SEVERE": "high",
        "LIFE_THREATENING": "high",
    }))
    reaction_severities: Mapping[str, str] = field(default_factory=lambda: _frozen({
        "MILD": "mild",
        "MODERATE": "moderate",
        "SEVERE": "severe",
        "LIFE_THREATENING": "severe",
    }))
    vital_signs: Tuple[VitalSignCode, ...] = DEFAULT_VITAL_SIGN_CODES
    blood_pressure: BloodPressureCode = BloodPressureCode()

    # Fallbacks
    default_gender: str = "unknown"
    default_route_code: str = "26643006"
    default_condition_status: str = "active"
    default_condition_category: str = "encounter-diagnosis"
    default_severity_code: str = "6736007"
    default_allergy_category: str = "environment"
    default_allergy_criticality: str = "unable-to-assess"
    default_reaction_severity: str = "moderate"

    def gender(self, value: Optional[str]) -> str:
        return self.genders.get(value or "", self.default_gender)

    def route_code(self, route: Optional[str]) -> str:
        return self.routes.get(route or "", self.default_route_code)

    def condition_status(self, status: Optional[str]) -> str:
        return self.condition_statuses.get(status or "", self.default_condition_status)

    def condition_category(self, condition_type: Optional[str]) -> str:
        return self.condition_categories.get(condition_type or "", self.default_condition_category)

    def severity_code(self, severity: Optional[str]) -> str:
        return self.severities.get(severity or "", self.default_severity_code)

    def allergy_category(self, allergy_type: Optional[str]) -> str:
        return self.allergy_categories.get(allergy_type or "", self.default_allergy_category)

    def allergy_criticality(self, severity: Optional[str]) -> str:
        return self.allergy_criticalities.get(severity or "", self.default_allergy_criticality)

    def reaction_severity(self, severity: Optional[str]) -> str:
        return self.reaction_severities.get(severity or "", self.default_reaction_severity)


DEFAULT_CODE_TABLES = CodeTables()
