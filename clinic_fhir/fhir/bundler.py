"""
FHIR Bundle Assembler

Collects mapped resources for one patient into a FHIR Bundle. Entries keep
the order in which they were added; ``fullUrl`` is the relative
``{ResourceType}/{id}`` reference other resources already use.

The Bundle is kept as the JSON the mappers produced rather than dumped from
a ``fhir.resources`` Bundle model: the models hold instants as ``datetime``
and re-render them, which would make bundle timestamps differ from the
search endpoints. Conformance of the assembled Bundle, entries included, is
checked against the R4B ``Bundle`` model in ``validation.py``.
"""
from typing import List, Dict, Any
from datetime import datetime, timezone
import time

from .codes import CCD_PROFILE
from .mappers import fhir_instant


class FHIRBundler:
    """
    Assembles FHIR resources into a Bundle.

    Usage:
        bundler = FHIRBundler()
        bundler.add_resource(patient)
        bundler.add_resources(observations)
        bundle = bundler.build(f"patient-bundle-{patient['id']}")
    """

    def __init__(self):
        """Initialize the bundler."""
        self.entries: List[Dict[str, Any]] = []

    def add_resource(self, resource: Dict[str, Any]) -> None:
        """
        Add a resource to the bundle.

        Args:
            resource: FHIR resource dictionary to add
        """
        self.entries.append({
            "fullUrl": f"{resource['resourceType']}/{resource['id']}",
            "resource": resource,
        })

    def add_resources(self, resources: List[Dict[str, Any]]) -> None:
        """
        Add multiple resources to the bundle.

        Args:
            resources: List of FHIR resource dictionaries to add
        """
        for resource in resources:
            self.add_resource(resource)

    def build(self, bundle_id: str, bundle_type: str = "collection") -> Dict[str, Any]:
        """
        Build the final FHIR Bundle.

        Args:
            bundle_id: Bundle ID
            bundle_type: FHIR Bundle.type

        Returns:
            Bundle dictionary with ``total`` equal to the number of entries
        """
        return {
            "resourceType": "Bundle",
            "id": bundle_id,
            "type": bundle_type,
            "timestamp": fhir_instant(datetime.now(timezone.utc)),
            "total": len(self.entries),
            "entry": list(self.entries),
        }

    @property
    def resource_count(self) -> int:
        """Number of resources in the bundle."""
        return len(self.entries)


def as_ccd_document(bundle: Dict[str, Any], patient_id: str) -> Dict[str, Any]:
    """
    Re-label a patient bundle as a Continuity of Care Document.

    Returns a new dictionary; the input bundle is left untouched.
    """
    return {
        **bundle,
        "type": "document",
        "meta": {"profile": [CCD_PROFILE]},
        "identifier": {
            "system": "urn:ietf:rfc:3986",
            "value": f"urn:uuid:{patient_id}-ccd-{int(time.time() * 1000)}",
        },
    }
