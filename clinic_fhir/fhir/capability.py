"""FHIR CapabilityStatement served at /fhir/metadata."""
from datetime import datetime, timezone
from typing import Any, Dict

from ..config import Settings
from .mappers import fhir_instant

US_CORE = "http://hl7.org/fhir/us/core/StructureDefinition"


def _search_type(resource_type: str, profile: str, *params: str) -> Dict[str, Any]:
    return {
        "type": resource_type,
        "profile": f"{US_CORE}/{profile}",
        "interaction": [{"code": "search-type"}],
        "searchParam": [{"name": name, "type": "reference"} for name in params],
    }


def capability_statement(settings: Settings) -> Dict[str, Any]:
    return {
        "resourceType": "CapabilityStatement",
        "id": settings.fhir_server_id,
        "name": settings.fhir_server_name,
        "title": settings.fhir_server_title,
        "status": "active",
        "experimental": False,
        "date": fhir_instant(datetime.now(timezone.utc)),
        "publisher": settings.publisher,
        "description": f"FHIR R4 API for {settings.app_name}",
        "kind": "instance",
        "software": {
            "name": settings.app_name,
            "version": settings.software_version,
        },
        "fhirVersion": "4.0.1",
        "format": ["json"],
        "rest": [{
            "mode": "server",
            "security": {
                "cors": True,
                "service": [{
                    "coding": [{
                        "system": "http://terminology.hl7.org/CodeSystem/restful-security-service",
                        "code": "OAuth",
                        "display": "OAuth",
                    }]
                }],
                "description": "Bearer token authentication required",
            },
            "resource": [
                {
                    "type": "Patient",
                    "profile": f"{US_CORE}/us-core-patient",
                    "interaction": [{"code": "read"}],
                    "searchParam": [{"name": "_id", "type": "token"}],
                },
                _search_type("Observation", "us-core-vital-signs", "patient", "encounter"),
                _search_type("MedicationRequest", "us-core-medicationrequest", "patient"),
                _search_type("Condition", "us-core-condition", "patient"),
                _search_type("AllergyIntolerance", "us-core-allergyintolerance", "patient"),
                {
                    "type": "Bundle",
                    "interaction": [{"code": "read"}],
                },
            ],
        }],
    }
