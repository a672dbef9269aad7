"""Read-only HL7 FHIR R4 export for multi-tenant clinic records."""
