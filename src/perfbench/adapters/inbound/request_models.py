"""Pydantic response models for the echo server."""

from pydantic import BaseModel, Field


class UploadResponse(BaseModel):
    """Result of draining an uploaded file part."""

    filename: str | None = Field(default=None, description="Client-supplied file name")
    bytes: int = Field(..., ge=0, description="Total bytes read from the file part")


class HealthResponse(BaseModel):
    status: str = "ok"
