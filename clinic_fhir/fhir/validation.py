"""
Structural validation of produced resources against the fhir.resources
models. The mappers emit plain dictionaries; this module only checks them
and never rewrites what is returned to the caller.

The models are the R4B (4.3.0) ones, the closest release fhir.resources
ships to the 4.0.1 this server advertises. A pass here means "structurally
valid R4B", not strict 4.0.1 conformance or profile validation.
"""
from typing import Any, Dict

from pydantic import ValidationError
from fhir.resources.R4B.allergyintolerance import AllergyIntolerance
from fhir.resources.R4B.bundle import Bundle
from fhir.resources.R4B.condition import Condition
from fhir.resources.R4B.medicationrequest import MedicationRequest
from fhir.resources.R4B.observation import Observation
from fhir.resources.R4B.patient import Patient


RESOURCE_MODELS = {
    "Patient": Patient,
    "Observation": Observation,
    "MedicationRequest": MedicationRequest,
    "Condition": Condition,
    "AllergyIntolerance": AllergyIntolerance,
    "Bundle": Bundle,
}


class ResourceValidationError(ValueError):
    """A mapped resource does not conform to its FHIR R4 structure definition."""

    def __init__(self, resource_type: str, resource_id: str, reason: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.reason = reason
        super().__init__(f"{resource_type}/{resource_id} failed FHIR validation: {reason}")


def describe_errors(error: ValidationError) -> str:
    """Element paths and messages only; the offending values are left out of logs."""
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in error.errors(include_url=False, include_context=False, include_input=False)
    )


def validate_resource(resource: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check a mapped resource against its R4B model.

    A Bundle is checked together with every resource in its entries.

    Args:
        resource: FHIR resource dictionary produced by a mapper or the bundler

    Returns:
        The same dictionary, unchanged

    Raises:
        ResourceValidationError: If the model rejects the resource
    """
    resource_type = resource.get("resourceType")
    model = RESOURCE_MODELS.get(resource_type)
    if model is None:
        raise ResourceValidationError(str(resource_type), str(resource.get("id")), "unsupported resource type")

    try:
        model.model_validate(resource)
    except ValidationError as e:
        raise ResourceValidationError(resource_type, str(resource.get("id")), describe_errors(e)) from e
    except (ValueError, TypeError) as e:
        raise ResourceValidationError(resource_type, str(resource.get("id")), str(e)) from e

    return resource
