"""
exports.py
----------
Purpose:
    API endpoints for spreadsheet exports.

Usage:
    1. POST /exports/contacts - Enrich a contact folder and export it (background)
    2. POST /exports/companies - Export a company folder
    3. GET /exports/status - Current export status
"""

from fastapi import APIRouter, BackgroundTasks, HTTPException, status

from lead_enricher.errors import ExportInProgressError, UnknownModelError
from lead_enricher.infrastructure.observability.logging import get_logger
from lead_enricher.models.api.export_request import CompanyExportRequest, ContactExportRequest
from lead_enricher.models.api.export_response import (
    CompanyExportResponse,
    ExportAcceptedResponse,
    ExportStatusResponse,
)
from lead_enricher.models.domain.records import ContactRecord
from lead_enricher.services.ai.models import MODEL_LIMITS
from lead_enricher.services.enrichment import coordinator
from lead_enricher.services.enrichment.coordinator import EnrichmentOptions
from lead_enricher.services.enrichment.export_status import export_status_tracker

router = APIRouter(prefix="/exports", tags=["exports"])
logger = get_logger(__name__)


async def run_contact_export(contacts: list[ContactRecord], options: EnrichmentOptions) -> None:
    """Background task body for a contact export."""
    try:
        await coordinator.enrichment_coordinator.run(contacts, options)
    except ExportInProgressError:
        logger.warning(
            "Export skipped, another run started first", folder=options.selected_folder
        )


@router.post(
    "/contacts", response_model=ExportAcceptedResponse, status_code=status.HTTP_202_ACCEPTED
)
async def export_contacts(request: ContactExportRequest, background_tasks: BackgroundTasks):
    """
    Schedule enrichment and export of a contact folder.

    Raises:
        400: No quota is configured for the requested model
        409: An export is already processing
    """
    if request.model and request.model not in MODEL_LIMITS:
        error = UnknownModelError(request.model)
        logger.info("Export rejected, unknown model", model=request.model)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))

    try:
        await coordinator.enrichment_coordinator.ensure_idle()
    except ExportInProgressError as e:
        logger.info("Export rejected, run already processing", started_at=e.started_at)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    options = EnrichmentOptions(
        selected_folder=request.selected_folder,
        find_domains=request.find_domains,
        split_names=request.split_names,
        api_key=request.api_key,
        model=request.model,
    )
    background_tasks.add_task(run_contact_export, request.contacts, options)

    logger.info(
        "Contact export scheduled",
        folder=request.selected_folder,
        contacts=len(request.contacts),
    )
    return ExportAcceptedResponse(
        selected_folder=request.selected_folder, contacts=len(request.contacts)
    )


@router.post("/companies", response_model=CompanyExportResponse)
async def export_companies(request: CompanyExportRequest):
    """
    Export a company folder to a spreadsheet.

    Raises:
        500: The sheet could not be written
    """
    path = await coordinator.enrichment_coordinator.export_companies(
        request.companies, request.selected_folder
    )
    if path is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Company export failed"
        )
    return CompanyExportResponse(path=str(path), companies=len(request.companies))


@router.get("/status", response_model=ExportStatusResponse)
async def get_export_status():
    current = await export_status_tracker.get()
    return ExportStatusResponse(**current.to_dict())
