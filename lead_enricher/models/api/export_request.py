# lead_enricher/models/api/export_request.py
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from lead_enricher.models.domain.records import CompanyRecord, ContactRecord


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ContactExportRequest(CamelModel):
    """Request body for enriching and exporting a contact folder."""

    contacts: list[ContactRecord]
    selected_folder: str = Field(..., min_length=1, max_length=200)
    find_domains: bool = False
    split_names: bool = False
    api_key: str | None = Field(default=None, description="Gemini key; falls back to settings")
    model: str | None = None


class CompanyExportRequest(CamelModel):
    """Request body for exporting a company folder (no AI)."""

    companies: list[CompanyRecord]
    selected_folder: str = Field(..., min_length=1, max_length=200)


class CompanyFolderRequest(CamelModel):
    """Companies saved in a folder, optionally linked to a contact folder."""

    companies: list[CompanyRecord]
    linked_contact_folder: str | None = None


class LogEntryRequest(CamelModel):
    """Log line sent by a client (scraper, popup) into the persisted log."""

    level: str = Field(default="info", max_length=20)
    message: str = Field(..., min_length=1)
    source: str = Field(default="content", max_length=50)
    data: dict[str, Any] | None = None


class GeneratePromptRequest(CamelModel):
    """Single free-form prompt sent straight to Gemini."""

    prompt: str = Field(..., min_length=1)
    model: str | None = None
    api_key: str | None = None
