import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from . import models, schemas, database
from .auth import TenantContext, get_tenant
from .config import settings
from .fhir.capability import capability_statement
from .fhir.validation import ResourceValidationError
from .services.fhir_service import FHIRService, PatientNotFoundError

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database tables on startup"""
    models.Base.metadata.create_all(bind=database.engine)
    logger.info("Database tables ready")
    yield

# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Read-only HL7 FHIR R4 export of clinic records",
    version=settings.software_version,
    debug=settings.debug,
    lifespan=lifespan
)


def get_fhir_service() -> FHIRService:
    """FHIR service dependency for FastAPI endpoints"""
    return FHIRService()


def caller(request: Request) -> str:
    """Who made the request, for error logs."""
    tenant = getattr(request.state, "tenant", None)
    if tenant is None:
        return "anonymous"
    return f"user {tenant.user_id} ({tenant.role}) of clinic {tenant.clinic_id}"


# ============================================================================
# ERROR HANDLING
# ============================================================================

@app.exception_handler(PatientNotFoundError)
async def patient_not_found_handler(request: Request, exc: PatientNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(SQLAlchemyError)
async def data_store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Clinical data store failure on %s for %s", request.url.path, caller(request))
    return JSONResponse(status_code=500, content={"detail": "Clinical data store error"})


@app.exception_handler(ResourceValidationError)
async def resource_validation_handler(request: Request, exc: ResourceValidationError):
    logger.error("Produced invalid FHIR resource on %s for %s: %s", request.url.path, caller(request), exc)
    return JSONResponse(status_code=500, content={"detail": "FHIR resource validation failed"})


# ============================================================================
# HEALTH
# ============================================================================

@app.get("/health", response_model=schemas.HealthResponse)
def health_check():
    """
    Health check endpoint - returns {"status": "ok"}

    This endpoint verifies the server is running properly.
    """
    return {"status": "ok"}


# ============================================================================
# FHIR R4 ENDPOINTS
# ============================================================================

@app.get("/fhir/metadata")
def get_capability_statement(tenant: TenantContext = Depends(get_tenant)) -> Dict[str, Any]:
    """FHIR CapabilityStatement describing the supported interactions."""
    return capability_statement(settings)


@app.get("/fhir/Patient/{patient_id}", responses={404: {"model": schemas.ErrorResponse}})
async def get_patient(
    patient_id: str,
    tenant: TenantContext = Depends(get_tenant),
    service: FHIRService = Depends(get_fhir_service),
) -> Dict[str, Any]:
    """
    Fetch a FHIR Patient resource

    Returns 404 if the patient doesn't exist in the caller's clinic.
    """
    return await service.get_patient_resource(patient_id, tenant.clinic_id)


@app.get("/fhir/Observation")
async def get_observations(
    patient: str = Query(..., min_length=1, description="Patient ID"),
    encounter: Optional[str] = Query(None, description="Appointment ID to restrict to"),
    tenant: TenantContext = Depends(get_tenant),
    service: FHIRService = Depends(get_fhir_service),
) -> List[Dict[str, Any]]:
    """Vital-sign Observations for a patient, newest first."""
    return await service.get_vital_sign_observations(patient, tenant.clinic_id, encounter)


@app.get("/fhir/MedicationRequest")
async def get_medication_requests(
    patient: str = Query(..., min_length=1, description="Patient ID"),
    tenant: TenantContext = Depends(get_tenant),
    service: FHIRService = Depends(get_fhir_service),
) -> List[Dict[str, Any]]:
    """MedicationRequests for a patient, newest prescription first."""
    return await service.get_medication_requests(patient, tenant.clinic_id)


@app.get("/fhir/Condition")
async def get_conditions(
    patient: str = Query(..., min_length=1, description="Patient ID"),
    tenant: TenantContext = Depends(get_tenant),
    service: FHIRService = Depends(get_fhir_service),
) -> List[Dict[str, Any]]:
    """Problem-list conditions followed by coded encounter diagnoses."""
    return await service.get_conditions(patient, tenant.clinic_id)


@app.get("/fhir/AllergyIntolerance")
async def get_allergy_intolerances(
    patient: str = Query(..., min_length=1, description="Patient ID"),
    tenant: TenantContext = Depends(get_tenant),
    service: FHIRService = Depends(get_fhir_service),
) -> List[Dict[str, Any]]:
    return await service.get_allergy_intolerances(patient, tenant.clinic_id)


@app.get("/fhir/Bundle/{patient_id}", responses={404: {"model": schemas.ErrorResponse}})
async def get_patient_bundle(
    patient_id: str,
    tenant: TenantContext = Depends(get_tenant),
    service: FHIRService = Depends(get_fhir_service),
) -> Dict[str, Any]:
    """
    Complete collection Bundle for a patient

    Entries: Patient, Observations, MedicationRequests, Conditions,
    AllergyIntolerances. Returns 404 if the patient doesn't exist in the
    caller's clinic.
    """
    return await service.get_patient_bundle(patient_id, tenant.clinic_id)


@app.get("/fhir/export/ccd/{patient_id}", responses={404: {"model": schemas.ErrorResponse}})
async def export_ccd(
    patient_id: str,
    tenant: TenantContext = Depends(get_tenant),
    service: FHIRService = Depends(get_fhir_service),
) -> Dict[str, Any]:
    """Patient bundle as a Continuity of Care Document (Bundle.type = document)."""
    return await service.export_ccd(patient_id, tenant.clinic_id)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("clinic_fhir.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
