from pydantic import BaseModel

# Health check schema
class HealthResponse(BaseModel):
    """Health check response"""
    status: str

# Error schema
class ErrorResponse(BaseModel):
    """Error body returned for 401/404/500 responses"""
    detail: str
