"""
Spreadsheet export for enriched contacts and company folders.

Workbooks are built with openpyxl and written under EXPORT_DIR. The export
runs in a worker thread so a large sheet does not block the event loop.
"""

import asyncio
import re
import unicodedata
from pathlib import Path
from typing import Any, Protocol

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill

from lead_enricher.config import settings
from lead_enricher.infrastructure.observability.logging import get_logger
from lead_enricher.models.domain.records import CompanyRecord, ContactRecord

logger = get_logger(__name__)

CONTACT_HEADERS = [
    "Full Name", "Title", "First Name", "Last Name", "First Name (ASCII)", "Last Name (ASCII)",
    "Job Title", "Location", "Contact Company", "Orbis", "LinkedIn Company", "Company Domain",
    "LinkedIn Profile", "LinkedIn Page URL", "Company Contact Count",
]  # fmt: skip

COMPANY_ENRICHMENT_HEADERS = [
    "Company Industry", "Company Size", "Company Description", "Company Location",
    "Company Website", "Company Founded Year", "Company Type", "Company Logo URL",
]  # fmt: skip

COMPANY_HEADERS = [
    "Company Name", "Domain", "Industry", "Company Size", "Description", "Location",
    "Website", "Logo URL",
]  # fmt: skip

_TRANSLITERATIONS = {
    "ß": "ss", "æ": "ae", "Æ": "AE", "ø": "o", "Ø": "O", "å": "a", "Å": "A", "ł": "l", "Ł": "L",
}  # fmt: skip
_COMBINING_MARKS = re.compile(r"[\u0300-\u036f]")
_UNSAFE_FILENAME = re.compile(r"[^\w.\- ]+")


def to_ascii(value: str | None) -> str:
    """Müller -> Muller, Łukasz -> Lukasz, Strauß -> Strauss"""
    if not value:
        return ""
    for source, target in _TRANSLITERATIONS.items():
        value = value.replace(source, target)
    return _COMBINING_MARKS.sub("", unicodedata.normalize("NFD", value))


def _cell(value: Any) -> Any:
    return "" if value is None else value


def contact_row(contact: ContactRecord, include_company_fields: bool) -> list[Any]:
    row = [
        contact.person_name, contact.title, contact.first_name, contact.last_name,
        to_ascii(contact.first_name), to_ascii(contact.last_name),
        contact.job_title, contact.location, contact.company_name,
        contact.orbis_name, contact.filtered_company, contact.company_domain,
        contact.profile_link, contact.page_url, contact.numero_contatti_per_azienda,
    ]  # fmt: skip
    if include_company_fields:
        row += [
            contact.company_industry, contact.company_size, contact.company_description,
            contact.company_location, contact.company_website, contact.company_founded_year,
            contact.company_type, contact.company_logo_url,
        ]  # fmt: skip
    return [_cell(value) for value in row]


def company_row(company: CompanyRecord) -> list[Any]:
    row = [
        company.name, company.domain, company.industry, company.size,
        company.description, company.location, company.sales_navigator_link, company.logo_url,
    ]  # fmt: skip
    return [_cell(value) for value in row]


def safe_filename(label: str) -> str:
    return _UNSAFE_FILENAME.sub("_", label).strip() or "export"


class Exporter(Protocol):
    async def export_contacts(
        self, contacts: list[ContactRecord], label: str, include_company_fields: bool
    ) -> Path: ...

    async def export_companies(self, companies: list[CompanyRecord], label: str) -> Path: ...


class XlsxExporter:
    """Writes .xlsx files into a target directory."""

    def __init__(self, export_dir: Path | None = None):
        self._export_dir = export_dir

    @property
    def export_dir(self) -> Path:
        if self._export_dir is None:
            self._export_dir = settings.export_dir()
        self._export_dir.mkdir(parents=True, exist_ok=True)
        return self._export_dir

    def _write_sheet(self, path: Path, title: str, headers: list[str], rows: list[list[Any]]) -> Path:
        wb = Workbook()
        ws = wb.active
        ws.title = title

        header_fill = PatternFill("solid", fgColor="0073B1")
        header_font = Font(color="FFFFFF", bold=True)
        for col_index, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col_index, value=header)
            cell.fill = header_fill
            cell.font = header_font
            cell.alignment = Alignment(horizontal="center", vertical="center")

        for row in rows:
            ws.append(row)

        ws.freeze_panes = "A2"
        wb.save(path)
        return path

    async def export_contacts(
        self, contacts: list[ContactRecord], label: str, include_company_fields: bool
    ) -> Path:
        suffix = "_contacts_enriched_with_companies" if include_company_fields else "_contacts_enriched"
        path = self.export_dir / f"{safe_filename(label)}{suffix}.xlsx"
        headers = CONTACT_HEADERS + (COMPANY_ENRICHMENT_HEADERS if include_company_fields else [])
        rows = [contact_row(contact, include_company_fields) for contact in contacts]

        logger.info("Creating Excel file", path=str(path), rows=len(rows))
        return await asyncio.to_thread(self._write_sheet, path, "Contacts", headers, rows)

    async def export_companies(self, companies: list[CompanyRecord], label: str) -> Path:
        path = self.export_dir / f"{safe_filename(label)}_companies.xlsx"
        rows = [company_row(company) for company in companies]

        logger.info("Creating Excel file", path=str(path), rows=len(rows))
        return await asyncio.to_thread(self._write_sheet, path, "Companies", COMPANY_HEADERS, rows)


# Singleton instance for application use
xlsx_exporter = XlsxExporter()
