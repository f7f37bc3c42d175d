"""
Company folders linked to contact folders.

A company folder may be linked to a contact folder; when that contact
folder is exported, each contact picks up the extended fields of the first
linked company matching its company name, LinkedIn company, Orbis name or
resolved domain (case-insensitive).
"""

import re

from lead_enricher.infrastructure.observability.logging import get_logger
from lead_enricher.models.domain.records import CompanyRecord, ContactRecord, clean_identifier
from lead_enricher.services.kv_store import KeyValueStore, kv_store

logger = get_logger(__name__)

FOLDERS_KEY = "company_folders"
LINKS_KEY = "company_folder_links"

_SCHEME = re.compile(r"^https?://", re.IGNORECASE)
_WWW = re.compile(r"^www\.", re.IGNORECASE)

# contact field <- company field
COMPANY_FIELD_MAP = {
    "company_industry": "industry",
    "company_size": "size",
    "company_description": "description",
    "company_location": "location",
    "company_website": "website",
    "company_founded_year": "founded_year",
    "company_type": "company_type",
    "company_logo_url": "logo_url",
}


def normalize_domain(value: str | None) -> str | None:
    """example.com from https://www.example.com/about"""
    value = clean_identifier(value)
    if not value:
        return None
    host = _WWW.sub("", _SCHEME.sub("", value)).split("/")[0]
    return host or None


def build_company_lookup(companies: list[CompanyRecord]) -> dict[str, CompanyRecord]:
    """Index companies by lower-cased name and by bare domain."""
    lookup: dict[str, CompanyRecord] = {}
    for company in companies:
        for key in (clean_identifier(company.name), normalize_domain(company.domain)):
            if key:
                lookup[key.lower()] = company
    return lookup


def match_company(contact: ContactRecord, lookup: dict[str, CompanyRecord]) -> CompanyRecord | None:
    identifiers = (
        contact.company_name,
        contact.filtered_company,
        contact.orbis_name,
        normalize_domain(contact.company_domain),
    )
    for identifier in identifiers:
        identifier = clean_identifier(identifier)
        if identifier and identifier.lower() in lookup:
            return lookup[identifier.lower()]
    return None


def apply_company_fields(contact: ContactRecord, company: CompanyRecord) -> None:
    for contact_field, company_field in COMPANY_FIELD_MAP.items():
        setattr(contact, contact_field, getattr(company, company_field))


class CompanyFolderRepository:
    """Company folders and their contact-folder links in the durable store."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def save_folder(
        self,
        folder: str,
        companies: list[CompanyRecord],
        linked_contact_folder: str | None = None,
    ) -> bool:
        """
        Store a folder's companies and its link, keeping every other folder.

        Raises:
            StoreReadError: If the existing folders could not be read; nothing
                is written so other folders and links survive the outage
        """
        values = await self.store.get([FOLDERS_KEY, LINKS_KEY])
        folders = values.get(FOLDERS_KEY) or {}
        links = values.get(LINKS_KEY) or {}

        folders[folder] = [company.model_dump(by_alias=True) for company in companies]
        if linked_contact_folder:
            links[folder] = linked_contact_folder
        else:
            links.pop(folder, None)

        saved = await self.store.set({FOLDERS_KEY: folders, LINKS_KEY: links})
        logger.info(
            "Company folder saved",
            folder=folder,
            companies=len(companies),
            linked_contact_folder=linked_contact_folder,
            persisted=saved,
        )
        return saved

    async def find_linked_companies(self, contact_folder: str) -> tuple[str | None, list[CompanyRecord]]:
        """Return (company_folder, companies) linked to contact_folder, if any."""
        try:
            values = await self.store.get([FOLDERS_KEY, LINKS_KEY])
        except Exception as e:
            logger.error("Error reading company folders", error=str(e), error_type=type(e).__name__)
            return None, []

        links = values.get(LINKS_KEY) or {}
        folders = values.get(FOLDERS_KEY) or {}

        for company_folder, linked_folder in links.items():
            if linked_folder == contact_folder:
                companies = [CompanyRecord.model_validate(raw) for raw in folders.get(company_folder, [])]
                logger.info(
                    "Found linked company folder",
                    company_folder=company_folder,
                    companies=len(companies),
                )
                return company_folder, companies

        return None, []


# Singleton instance for application use
company_folder_repository = CompanyFolderRepository(kv_store)
