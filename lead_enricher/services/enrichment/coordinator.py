"""
Enrichment Coordinator
Runs one export of a contact folder end to end: guard against a concurrent
run, resolve company domains and name splits through the batch
orchestrator, merge linked company-folder fields, hand the enriched
contacts to the exporter and report the outcome through notifications.

Checking the status and claiming it happen under one in-process lock, and
each run carries its own run id. A run returns the status to idle when it
ends only while it still owns it, so a run that was reset as stuck cannot
clear a newer one.
"""

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from uuid import uuid4

from lead_enricher.config import settings
from lead_enricher.errors import ExportInProgressError
from lead_enricher.infrastructure.observability.logging import get_logger
from lead_enricher.models.domain.records import CompanyRecord, ContactRecord, clean_identifier
from lead_enricher.services.ai.batch_orchestrator import BatchOrchestrator, batch_orchestrator
from lead_enricher.services.ai.mutex import Mutex
from lead_enricher.services.ai.prompts import DOMAINS, NAMES
from lead_enricher.services.enrichment.company_links import (
    CompanyFolderRepository,
    apply_company_fields,
    build_company_lookup,
    company_folder_repository,
    match_company,
)
from lead_enricher.services.enrichment.export_status import (
    ExportStatusTracker,
    ExportWatchdog,
    export_status_tracker,
    export_watchdog,
)
from lead_enricher.services.export.xlsx_exporter import Exporter, xlsx_exporter
from lead_enricher.services.notifications import Notifier, notifier

logger = get_logger(__name__)


@dataclass(slots=True)
class EnrichmentOptions:
    selected_folder: str
    find_domains: bool = False
    split_names: bool = False
    api_key: str | None = None
    model: str | None = None

    def resolved_api_key(self) -> str | None:
        return self.api_key or settings.GEMINI_API_KEY

    def resolved_model(self) -> str:
        return self.model or settings.GEMINI_DEFAULT_MODEL


@dataclass(slots=True)
class ExportResult:
    path: Path
    contacts: int
    domains_resolved: int = 0
    names_resolved: int = 0
    linked_company_folder: str | None = None


def unique_identifiers(values: list[str | None]) -> list[str]:
    """Cleaned, de-duplicated identifiers in first-seen order."""
    cleaned = (clean_identifier(value) for value in values)
    return list(dict.fromkeys(value for value in cleaned if value))


def apply_name_split(contact: ContactRecord, parts: Any) -> None:
    first, last, title = parts
    contact.first_name = first or None
    contact.last_name = last or None
    contact.title = title or None


class EnrichmentCoordinator:
    """Single-flight export runs for contact folders, plus company exports."""

    def __init__(
        self,
        orchestrator: BatchOrchestrator,
        status: ExportStatusTracker,
        exporter: Exporter,
        notifier: Notifier,
        company_folders: CompanyFolderRepository,
        watchdog: ExportWatchdog | None = None,
    ):
        self.orchestrator = orchestrator
        self.status = status
        self.exporter = exporter
        self.notifier = notifier
        self.company_folders = company_folders
        self.watchdog = watchdog
        self._claim_lock = Mutex()

    async def ensure_idle(self) -> None:
        """
        Raises:
            ExportInProgressError: If a run is processing and not yet stuck
        """
        current = await self.status.get()
        if current.is_processing and not self.status.is_stuck(
            current, int(settings.EXPORT_MAX_PROCESSING_SECONDS * 1000)
        ):
            raise ExportInProgressError(current.last_processing_start)

    async def run(self, contacts: list[ContactRecord], options: EnrichmentOptions) -> ExportResult | None:
        """
        Enrich and export contacts into the options.selected_folder sheet.

        Returns:
            ExportResult on success, None when the run failed (the failure is
            logged and sent as an "Export Error" notification)

        Raises:
            ExportInProgressError: If another run is processing
        """
        async with self._claim_lock:
            await self.ensure_idle()
            run_id = uuid4().hex
            await self.status.mark_processing(run_id)

        folder = options.selected_folder
        try:
            if self.watchdog is not None:
                self.watchdog.arm()

            await self.notifier.notify(
                "Export Started", f'Processing for "{folder}" has begun. This may take a while.'
            )
            logger.info(
                "Export run started",
                folder=folder,
                contacts=len(contacts),
                find_domains=options.find_domains,
                split_names=options.split_names,
            )

            enriched = [contact.model_copy(deep=True) for contact in contacts]
            domain_map, name_map = await self._resolve(enriched, options)

            for contact in enriched:
                company = clean_identifier(contact.filtered_company)
                if company and company in domain_map:
                    contact.company_domain = domain_map[company]

                person = clean_identifier(contact.person_name)
                if person and person in name_map:
                    apply_name_split(contact, name_map[person])

            company_folder, companies = await self.company_folders.find_linked_companies(folder)
            matched = self._merge_companies(enriched, companies)

            path = await self.exporter.export_contacts(
                enriched, folder, include_company_fields=bool(companies)
            )

            await self.notifier.notify(
                "Export Complete", f'The file "{path.name}" was created successfully.'
            )
            logger.info(
                "Export run completed",
                folder=folder,
                path=str(path),
                domains_resolved=len(domain_map),
                names_resolved=len(name_map),
                company_matches=matched,
            )
            return ExportResult(
                path=path,
                contacts=len(enriched),
                domains_resolved=len(domain_map),
                names_resolved=len(name_map),
                linked_company_folder=company_folder,
            )

        except Exception as e:
            logger.error(
                "Export run failed", folder=folder, error=str(e), error_type=type(e).__name__
            )
            await self._notify_error(e)
            return None

        finally:
            await self._release(run_id)

    async def _release(self, run_id: str) -> None:
        async with self._claim_lock:
            current = await self.status.get()
            if current.is_processing and current.run_id not in (run_id, None):
                logger.warning(
                    "Export run superseded, leaving status",
                    run_id=run_id,
                    current_run_id=current.run_id,
                )
                return

            if self.watchdog is not None:
                await self.watchdog.disarm()
            await self.status.mark_idle()

    async def _resolve(
        self, contacts: list[ContactRecord], options: EnrichmentOptions
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """Run the domain and name lookups concurrently; each fails on its own."""
        if not (options.find_domains or options.split_names):
            return {}, {}

        api_key = options.resolved_api_key()
        if not api_key:
            logger.warning("No Gemini API key configured, skipping AI enrichment")
            return {}, {}

        model = options.resolved_model()
        lookups: dict[str, Awaitable[dict[str, Any]]] = {}

        if options.find_domains:
            companies = unique_identifiers([contact.filtered_company for contact in contacts])
            lookups[DOMAINS] = self.orchestrator.resolve_batch(companies, api_key, model, DOMAINS)

        if options.split_names:
            names = unique_identifiers([contact.person_name for contact in contacts])
            lookups[NAMES] = self.orchestrator.resolve_batch(names, api_key, model, NAMES)

        outcomes = await asyncio.gather(*lookups.values(), return_exceptions=True)

        resolved: dict[str, dict[str, Any]] = {DOMAINS: {}, NAMES: {}}
        for namespace, outcome in zip(lookups, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Lookup failed",
                    namespace=namespace,
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
                continue
            resolved[namespace] = outcome

        return resolved[DOMAINS], resolved[NAMES]

    def _merge_companies(self, contacts: list[ContactRecord], companies: list[CompanyRecord]) -> int:
        if not companies:
            return 0

        lookup = build_company_lookup(companies)
        matched = 0
        for contact in contacts:
            company = match_company(contact, lookup)
            if company is not None:
                apply_company_fields(contact, company)
                matched += 1
        return matched

    async def _notify_error(self, error: Exception) -> None:
        try:
            await self.notifier.notify("Export Error", f"Details: {error}")
        except Exception as e:
            logger.error("Could not send error notification", error=str(e))

    async def export_companies(self, companies: list[CompanyRecord], folder: str) -> Path | None:
        """Write a company folder sheet. No AI lookups are involved."""
        try:
            path = await self.exporter.export_companies(companies, folder)
            await self.notifier.notify(
                "Export Complete", f'The file "{path.name}" was created successfully.'
            )
            logger.info("Company export completed", folder=folder, companies=len(companies))
            return path

        except Exception as e:
            logger.error(
                "Company export failed", folder=folder, error=str(e), error_type=type(e).__name__
            )
            await self._notify_error(e)
            return None


# Singleton instance for application use
enrichment_coordinator = EnrichmentCoordinator(
    batch_orchestrator,
    export_status_tracker,
    xlsx_exporter,
    notifier,
    company_folder_repository,
    watchdog=export_watchdog,
)
