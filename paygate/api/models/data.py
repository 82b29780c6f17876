# paygate/api/models/data.py
from pydantic import BaseModel, Field


class DataPayload(BaseModel):
    """The protected content itself."""
    timestamp: str = Field(..., description="ISO 8601 time the data was served")
    info: str = Field(..., description="Protected information")


class DataResponse(BaseModel):
    """Response model for the paid data endpoint."""
    success: bool
    message: str = Field(default="Data retrieved successfully", description="Success message")
    data: DataPayload
