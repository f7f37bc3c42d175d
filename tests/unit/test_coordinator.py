import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from lead_enricher.config import settings
from lead_enricher.errors import ExportInProgressError, GeminiNetworkError
from lead_enricher.models.domain.records import CompanyRecord, ContactRecord
from lead_enricher.services.ai.prompts import DOMAINS, NAMES
from lead_enricher.services.enrichment.company_links import CompanyFolderRepository
from lead_enricher.services.enrichment.coordinator import (
    EnrichmentCoordinator,
    EnrichmentOptions,
    ExportResult,
)
from lead_enricher.services.enrichment.export_status import ExportStatusTracker


def resolver(domains=None, names=None, fail=()):
    async def _resolve(items, api_key, model, namespace):
        if namespace in fail:
            raise GeminiNetworkError(f"{namespace} lookup failed")
        source = domains if namespace == DOMAINS else names
        return {item: source[item] for item in items if item in (source or {})}

    return _resolve


@pytest.fixture
def tracker(store, clock):
    return ExportStatusTracker(store, clock_ms=clock)


@pytest.fixture
def orchestrator():
    mock = AsyncMock()
    mock.resolve_batch.side_effect = resolver(
        domains={"Acme": "acme.com", "Ghost": "N/A"},
        names={"Jane Doe": ["Jane", "Doe", "Mrs."], "John Smith": ["John", "Smith", "Mr."]},
    )
    return mock


class FakeWatchdog:
    def __init__(self):
        self.armed = False
        self.events: list[str] = []

    def arm(self):
        self.armed = True
        self.events.append("arm")

    async def disarm(self):
        self.armed = False
        self.events.append("disarm")


class GatedExporter:
    """Holds export_contacts open until the gate is set."""

    def __init__(self, watchdog=None):
        self.contact_exports: list[dict] = []
        self.watchdog = watchdog
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()
        self.armed_at_export: bool | None = None

    async def export_contacts(self, contacts, label, include_company_fields):
        if self.watchdog is not None:
            self.armed_at_export = self.watchdog.armed
        self.entered.set()
        await self.gate.wait()
        self.contact_exports.append(
            {"contacts": contacts, "label": label, "include_company_fields": include_company_fields}
        )
        return Path(f"/tmp/{label}_contacts_enriched.xlsx")


@pytest.fixture
def make_coordinator(store, tracker, orchestrator, fake_notifier, fake_exporter):
    def _make(exporter=None, watchdog=None):
        return EnrichmentCoordinator(
            orchestrator,
            tracker,
            exporter or fake_exporter,
            fake_notifier,
            CompanyFolderRepository(store),
            watchdog=watchdog,
        )

    return _make


def full_options(**overrides):
    values = {
        "selected_folder": "Leads",
        "find_domains": True,
        "split_names": True,
        "api_key": "key",
        "model": "gemini-2.5-flash",
    }
    values.update(overrides)
    return EnrichmentOptions(**values)


@pytest.mark.asyncio
async def test_run_merges_domains_and_names(make_coordinator, sample_contacts, fake_exporter, tracker):
    coordinator = make_coordinator()

    result = await coordinator.run(sample_contacts, full_options())

    assert result is not None
    assert result.domains_resolved == 2
    assert result.names_resolved == 2
    exported = fake_exporter.contact_exports[0]["contacts"]
    jane, john = exported
    assert (jane.company_domain, jane.first_name, jane.last_name, jane.title) == (
        "acme.com", "Jane", "Doe", "Mrs.",
    )  # fmt: skip
    assert john.company_domain == "N/A"
    assert john.first_name == "John"
    assert fake_exporter.contact_exports[0]["include_company_fields"] is False
    assert (await tracker.get()).status == "idle"


@pytest.mark.asyncio
async def test_input_contacts_are_not_mutated(make_coordinator, sample_contacts):
    await make_coordinator().run(sample_contacts, full_options())

    assert sample_contacts[0].company_domain is None
    assert sample_contacts[0].first_name is None


@pytest.mark.asyncio
async def test_notifications_for_successful_run(make_coordinator, sample_contacts, fake_notifier):
    await make_coordinator().run(sample_contacts, full_options())

    assert fake_notifier.titles == ["Export Started", "Export Complete"]
    assert "Leads_contacts_enriched.xlsx" in fake_notifier.sent[1][1]


@pytest.mark.asyncio
async def test_identifiers_are_cleaned_and_deduplicated(make_coordinator, orchestrator):
    contacts = [
        ContactRecord(person_name="Jane Doe", filtered_company="Acme"),
        ContactRecord(person_name=" Jane Doe ", filtered_company="Acme "),
        ContactRecord(person_name="N/A", filtered_company="N/A"),
        ContactRecord(person_name=None, filtered_company=""),
    ]

    await make_coordinator().run(contacts, full_options())

    calls = {call.args[3]: call.args[0] for call in orchestrator.resolve_batch.await_args_list}
    assert calls == {DOMAINS: ["Acme"], NAMES: ["Jane Doe"]}


@pytest.mark.asyncio
async def test_one_failed_lookup_does_not_block_the_other(
    make_coordinator, orchestrator, sample_contacts, fake_exporter
):
    orchestrator.resolve_batch.side_effect = resolver(
        names={"Jane Doe": ["Jane", "Doe", "Mrs."]}, fail=(DOMAINS,)
    )

    result = await make_coordinator().run(sample_contacts, full_options())

    assert result is not None
    jane = fake_exporter.contact_exports[0]["contacts"][0]
    assert jane.company_domain is None
    assert jane.first_name == "Jane"


@pytest.mark.asyncio
async def test_lookups_skipped_when_not_requested(make_coordinator, orchestrator, sample_contacts):
    result = await make_coordinator().run(
        sample_contacts, full_options(find_domains=False, split_names=False)
    )

    assert result is not None
    orchestrator.resolve_batch.assert_not_awaited()


@pytest.mark.asyncio
async def test_lookups_skipped_without_api_key(
    make_coordinator, orchestrator, sample_contacts, monkeypatch
):
    monkeypatch.setattr(settings, "GEMINI_API_KEY", None)

    result = await make_coordinator().run(sample_contacts, full_options(api_key=None))

    assert result is not None
    orchestrator.resolve_batch.assert_not_awaited()


@pytest.mark.asyncio
async def test_export_failure_returns_status_to_idle(
    make_coordinator, sample_contacts, tracker, fake_notifier
):
    exporter = AsyncMock()
    exporter.export_contacts.side_effect = OSError("disk full")

    result = await make_coordinator(exporter=exporter).run(sample_contacts, full_options())

    assert result is None
    assert (await tracker.get()).status == "idle"
    assert fake_notifier.sent[-1] == ("Export Error", "Details: disk full")


@pytest.mark.asyncio
async def test_concurrent_run_is_rejected_without_touching_status(
    make_coordinator, sample_contacts, tracker, fake_exporter, fake_notifier
):
    started = await tracker.mark_processing()

    with pytest.raises(ExportInProgressError) as exc_info:
        await make_coordinator().run(sample_contacts, full_options())

    assert exc_info.value.started_at == started
    status = await tracker.get()
    assert status.status == "processing"
    assert fake_exporter.contact_exports == []
    assert fake_notifier.sent == []


@pytest.mark.asyncio
async def test_stuck_run_does_not_block_a_new_one(make_coordinator, sample_contacts, tracker, clock):
    await tracker.mark_processing()
    clock.advance(int(settings.EXPORT_MAX_PROCESSING_SECONDS * 1000) + 1)

    result = await make_coordinator().run(sample_contacts, full_options())

    assert result is not None
    assert (await tracker.get()).status == "idle"


@pytest.mark.asyncio
async def test_linked_company_fields_are_merged(
    make_coordinator, sample_contacts, store, fake_exporter
):
    repo = CompanyFolderRepository(store)
    await repo.save_folder(
        "Targets",
        [CompanyRecord(name="Acme", domain="https://www.acme.com/", industry="Software", size="51-200")],
        linked_contact_folder="Leads",
    )

    result = await make_coordinator().run(sample_contacts, full_options(find_domains=False))

    assert result.linked_company_folder == "Targets"
    export = fake_exporter.contact_exports[0]
    assert export["include_company_fields"] is True
    jane, john = export["contacts"]
    assert jane.company_industry == "Software"
    assert jane.company_size == "51-200"
    assert john.company_industry is None


@pytest.mark.asyncio
async def test_company_export_notifies(make_coordinator, fake_exporter, fake_notifier):
    companies = [CompanyRecord(name="Acme", domain="acme.com")]

    path = await make_coordinator().export_companies(companies, "Targets")

    assert path.name == "Targets_companies.xlsx"
    assert fake_exporter.company_exports[0]["companies"] == companies
    assert fake_notifier.titles == ["Export Complete"]


@pytest.mark.asyncio
async def test_company_export_failure_notifies_error(make_coordinator, fake_notifier):
    exporter = AsyncMock()
    exporter.export_companies.side_effect = PermissionError("read-only")

    path = await make_coordinator(exporter=exporter).export_companies([], "Targets")

    assert path is None
    assert fake_notifier.sent == [("Export Error", "Details: read-only")]


@pytest.mark.asyncio
async def test_simultaneous_runs_claim_status_once(make_coordinator, sample_contacts, tracker, fake_notifier):
    exporter = GatedExporter()
    coordinator = make_coordinator(exporter=exporter)

    runs = asyncio.gather(
        coordinator.run(sample_contacts, full_options()),
        coordinator.run(sample_contacts, full_options()),
        return_exceptions=True,
    )
    await exporter.entered.wait()
    exporter.gate.set()
    outcomes = await runs

    assert sum(isinstance(outcome, ExportInProgressError) for outcome in outcomes) == 1
    assert sum(isinstance(outcome, ExportResult) for outcome in outcomes) == 1
    assert len(exporter.contact_exports) == 1
    assert fake_notifier.titles == ["Export Started", "Export Complete"]
    assert (await tracker.get()).status == "idle"


@pytest.mark.asyncio
async def test_superseded_run_leaves_newer_run_processing(make_coordinator, sample_contacts, tracker):
    watchdog = FakeWatchdog()
    exporter = GatedExporter()
    coordinator = make_coordinator(exporter=exporter, watchdog=watchdog)

    stale = asyncio.create_task(coordinator.run(sample_contacts, full_options()))
    await exporter.entered.wait()

    # The stuck run was reset and a newer run claimed the status meanwhile
    await tracker.mark_idle()
    await tracker.mark_processing("newer-run")

    exporter.gate.set()
    assert await stale is not None

    status = await tracker.get()
    assert status.status == "processing"
    assert status.run_id == "newer-run"
    assert watchdog.events == ["arm"]


@pytest.mark.asyncio
async def test_watchdog_armed_during_run_and_disarmed_after(make_coordinator, sample_contacts):
    watchdog = FakeWatchdog()
    exporter = GatedExporter(watchdog=watchdog)
    exporter.gate.set()

    result = await make_coordinator(exporter=exporter, watchdog=watchdog).run(
        sample_contacts, full_options()
    )

    assert result is not None
    assert exporter.armed_at_export is True
    assert watchdog.armed is False
    assert watchdog.events == ["arm", "disarm"]


@pytest.mark.asyncio
async def test_watchdog_disarmed_when_export_fails(make_coordinator, sample_contacts, tracker):
    watchdog = FakeWatchdog()
    exporter = AsyncMock()
    exporter.export_contacts.side_effect = OSError("disk full")

    result = await make_coordinator(exporter=exporter, watchdog=watchdog).run(
        sample_contacts, full_options()
    )

    assert result is None
    assert watchdog.armed is False
    assert watchdog.events == ["arm", "disarm"]
    assert (await tracker.get()).status == "idle"


@pytest.mark.asyncio
async def test_linked_folder_without_matches_still_adds_company_columns(
    make_coordinator, sample_contacts, store, fake_exporter
):
    repo = CompanyFolderRepository(store)
    await repo.save_folder(
        "Targets", [CompanyRecord(name="Initech", domain="initech.com")], linked_contact_folder="Leads"
    )

    await make_coordinator().run(sample_contacts, full_options(find_domains=False))

    export = fake_exporter.contact_exports[0]
    assert export["include_company_fields"] is True
    assert all(contact.company_industry is None for contact in export["contacts"])


@pytest.mark.asyncio
async def test_numeric_founded_year_in_linked_folder(
    make_coordinator, sample_contacts, store, fake_exporter
):
    store.data["company_folders"] = {"Targets": [{"name": "Acme", "foundedYear": 1999}]}
    store.data["company_folder_links"] = {"Targets": "Leads"}

    result = await make_coordinator().run(sample_contacts, full_options(find_domains=False))

    assert result is not None
    jane = fake_exporter.contact_exports[0]["contacts"][0]
    assert jane.company_founded_year == 1999
