"""
FHIR Export Module

Projects clinic records into FHIR R4 resources.

Components:
- codes: Injectable terminology tables (SNOMED CT, LOINC, HL7)
- conditions: Tagged variants for the two condition sources
- mappers: Individual resource mappers (Patient, Observation, etc.)
- bundler: FHIR Bundle assembler
- capability: CapabilityStatement
- validation: Conformance check against fhir.resources models
"""
from .codes import CodeTables, DEFAULT_CODE_TABLES
from .bundler import FHIRBundler, as_ccd_document
from .mappers import (
    PatientMapper,
    ObservationMapper,
    MedicationRequestMapper,
    ConditionMapper,
    AllergyIntoleranceMapper,
)

__all__ = [
    "CodeTables",
    "DEFAULT_CODE_TABLES",
    "FHIRBundler",
    "as_ccd_document",
    "PatientMapper",
    "ObservationMapper",
    "MedicationRequestMapper",
    "ConditionMapper",
    "AllergyIntoleranceMapper",
]
