"""
Scraped contact and company records.

Records arrive from the scraper with camelCase keys; fields are snake_case
here and accept either spelling. Unknown keys are kept so nothing the
scraper sends is lost on the way to the export.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

# Placeholder the scraper writes for fields it could not read
NOT_AVAILABLE = "N/A"


def clean_identifier(value: str | None) -> str | None:
    """Strip value; empty strings and the N/A placeholder become None."""
    if value is None:
        return None
    value = value.strip()
    if not value or value.upper() == NOT_AVAILABLE:
        return None
    return value


class ScrapedRecord(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class CompanyRecord(ScrapedRecord):
    """A company saved into a company folder."""

    name: str | None = None
    domain: str | None = None
    industry: str | None = None
    size: str | None = None
    description: str | None = None
    location: str | None = None
    website: str | None = None
    founded_year: int | str | None = None
    company_type: str | None = None
    logo_url: str | None = None
    sales_navigator_link: str | None = None


class ContactRecord(ScrapedRecord):
    """A contact scraped from a people search or profile page, plus enrichment."""

    person_name: str | None = None
    job_title: str | None = None
    location: str | None = None
    company_name: str | None = None
    orbis_name: str | None = None
    filtered_company: str | None = None
    profile_link: str | None = None
    page_url: str | None = None
    numero_contatti_per_azienda: int | str | None = None

    # Gemini-derived
    company_domain: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    title: str | None = None

    # Linked company folder
    company_industry: str | None = None
    company_size: str | None = None
    company_description: str | None = None
    company_location: str | None = None
    company_website: str | None = None
    company_founded_year: int | str | None = None
    company_type: str | None = None
    company_logo_url: str | None = None
