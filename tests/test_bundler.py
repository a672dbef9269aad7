"""
Bundle assembly tests.
"""
import re

import pytest

from clinic_fhir.fhir.bundler import FHIRBundler, as_ccd_document
from clinic_fhir.fhir.codes import CCD_PROFILE
from clinic_fhir.fhir.validation import ResourceValidationError, validate_resource


def resource(resource_type, resource_id):
    return {"resourceType": resource_type, "id": resource_id}


class TestFHIRBundler:
    """Test bundle assembly"""

    def test_empty_bundle(self):
        bundle = FHIRBundler().build("patient-bundle-p1")

        assert bundle["resourceType"] == "Bundle"
        assert bundle["id"] == "patient-bundle-p1"
        assert bundle["type"] == "collection"
        assert bundle["total"] == 0
        assert bundle["entry"] == []
        assert re.match(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$", bundle["timestamp"])

    def test_full_url_is_relative_reference(self):
        bundler = FHIRBundler()
        bundler.add_resource(resource("Patient", "p1"))

        entry = bundler.build("b")["entry"][0]
        assert entry["fullUrl"] == "Patient/p1"
        assert entry["resource"] == resource("Patient", "p1")

    def test_order_and_total(self):
        bundler = FHIRBundler()
        bundler.add_resource(resource("Patient", "p1"))
        bundler.add_resources([resource("Observation", "o1"), resource("Observation", "o2")])
        bundler.add_resources([])
        bundler.add_resource(resource("AllergyIntolerance", "a1"))

        bundle = bundler.build("b")
        assert bundle["total"] == len(bundle["entry"]) == bundler.resource_count == 4
        assert [e["resource"]["resourceType"] for e in bundle["entry"]] == [
            "Patient", "Observation", "Observation", "AllergyIntolerance",
        ]

    def test_build_snapshot_is_independent(self):
        bundler = FHIRBundler()
        bundler.add_resource(resource("Patient", "p1"))
        bundle = bundler.build("b")
        bundler.add_resource(resource("Observation", "o1"))

        assert bundle["total"] == 1
        assert len(bundle["entry"]) == 1


class TestCCDDocument:

    def test_relabels_bundle_as_document(self):
        bundler = FHIRBundler()
        bundler.add_resource(resource("Patient", "p1"))
        bundle = bundler.build("patient-bundle-p1")

        ccd = as_ccd_document(bundle, "p1")

        assert ccd["type"] == "document"
        assert ccd["meta"] == {"profile": [CCD_PROFILE]}
        assert ccd["identifier"]["system"] == "urn:ietf:rfc:3986"
        assert re.match(r"^urn:uuid:p1-ccd-\d+$", ccd["identifier"]["value"])
        assert ccd["entry"] == bundle["entry"]
        assert ccd["total"] == 1

    def test_source_bundle_untouched(self):
        bundle = FHIRBundler().build("b")
        as_ccd_document(bundle, "p1")

        assert bundle["type"] == "collection"
        assert "meta" not in bundle


class TestBundleConformance:
    """Assembled bundles are checked against the R4B Bundle model, entries included."""

    PATIENT = {"resourceType": "Patient", "id": "p1", "gender": "female", "birthDate": "1980-05-15"}
    ALLERGY = {
        "resourceType": "AllergyIntolerance",
        "id": "a1",
        "patient": {"reference": "Patient/p1"},
        "code": {"coding": [], "text": "Penicillin"},
        "recordedDate": "2024-03-15T09:30:00.000Z",
    }

    def build(self, *resources):
        bundler = FHIRBundler()
        bundler.add_resources(list(resources))
        return bundler.build("patient-bundle-p1")

    def test_collection_bundle_is_valid(self):
        bundle = self.build(self.PATIENT, self.ALLERGY)

        assert validate_resource(bundle) is bundle

    def test_ccd_document_is_valid(self):
        ccd = as_ccd_document(self.build(self.PATIENT), "p1")

        assert validate_resource(ccd) is ccd

    def test_invalid_entry_fails_the_bundle(self):
        observation_without_code = {"resourceType": "Observation", "id": "o1", "status": "final"}
        bundle = self.build(self.PATIENT, observation_without_code)

        with pytest.raises(ResourceValidationError) as exc_info:
            validate_resource(bundle)

        assert exc_info.value.resource_type == "Bundle"
        assert exc_info.value.resource_id == "patient-bundle-p1"
