# lead_enricher/models/api/export_response.py
from typing import Any, Literal

from pydantic import BaseModel, Field


class ExportAcceptedResponse(BaseModel):
    """Response for POST /exports/contacts"""

    accepted: bool = True
    selected_folder: str
    contacts: int
    message: str = "Export scheduled"


class ExportStatusResponse(BaseModel):
    """Response for GET /exports/status"""

    status: Literal["idle", "processing"]
    last_processing_start: int | None = Field(None, description="Epoch millis of the active run")


class CompanyExportResponse(BaseModel):
    """Response for POST /exports/companies"""

    path: str
    companies: int


class CompanyFolderResponse(BaseModel):
    """Response for PUT /company-folders/{folder}"""

    folder: str
    companies: int
    linked_contact_folder: str | None = None
    persisted: bool


class GeneratePromptResponse(BaseModel):
    """Response for POST /ai/generate"""

    model: str
    result: Any


class UsageResponse(BaseModel):
    """Response for GET /usage"""

    usage: dict[str, dict[str, int]] = Field(..., description="Successful calls per day per model")
    quotas: dict[str, dict[str, Any]] = Field(..., description="Limits and in-memory reservations")


class LogActionResponse(BaseModel):
    """Response for POST /logs and DELETE /logs"""

    success: bool
    entries: int
