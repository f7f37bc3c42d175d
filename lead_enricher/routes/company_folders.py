from fastapi import APIRouter, HTTPException, Path, status

from lead_enricher.infrastructure.observability.logging import get_logger
from lead_enricher.models.api.export_request import CompanyFolderRequest
from lead_enricher.models.api.export_response import CompanyFolderResponse
from lead_enricher.services.enrichment import company_links

router = APIRouter(prefix="/company-folders", tags=["company-folders"])
logger = get_logger(__name__)


@router.put("/{folder}", response_model=CompanyFolderResponse)
async def save_company_folder(
    request: CompanyFolderRequest,
    folder: str = Path(..., min_length=1, max_length=200),
):
    """Store a company folder and (optionally) link it to a contact folder."""
    try:
        persisted = await company_links.company_folder_repository.save_folder(
            folder, request.companies, request.linked_contact_folder
        )
    except Exception as e:
        logger.error("Failed to save company folder", folder=folder, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Store unavailable"
        )

    return CompanyFolderResponse(
        folder=folder,
        companies=len(request.companies),
        linked_contact_folder=request.linked_contact_folder,
        persisted=persisted,
    )
