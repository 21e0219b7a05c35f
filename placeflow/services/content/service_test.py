"""Unit tests for the content enrichment service."""

import pytest

from placeflow.core.exceptions import ContentValidationError, PersistenceError, ProviderError
from placeflow.services.content.service import Service, format_stats
from placeflow.services.places.models import EnrichmentStats
from placeflow.services.providers.content_client import GeneratedContent

ABOUT = (
    "Trimsalon Bella verzorgt al meer dan tien jaar honden van alle rassen in Gent. "
    "Met geduld en vakmanschap krijgt elke hond een behandeling op maat."
)


def _generated(about=ABOUT):
    return GeneratedContent(
        aboutUs=about,
        highlights=["Ervaren trimsters", "Rustige salon", "Alle rassen"],
        services=["Wassen", "Knippen", "Nagels knippen"],
        targetAudience="Hondeneigenaren in Gent.",
        metaDescription="Trimsalon Bella in Gent: wassen, knippen en verzorgen.",
    )


class FakeContentClient:
    """Returns a canned result (or raises) per record name."""

    def __init__(self, failures=None):
        self.failures = failures or {}
        self.prompts: list[str] = []

    async def generate(self, prompt):
        self.prompts.append(prompt)
        for name, error in self.failures.items():
            if f"Bedrijfsnaam: {name}\n" in prompt:
                raise error
        return _generated()


@pytest.fixture
def gent(memory_repo):
    return memory_repo.add_unit("BE", "Gent", slug="gent")


def _service(repo, client, store, batch_size=20):
    return Service(repo=repo, client=client, store=store, batch_size=batch_size)


@pytest.mark.unit
class TestContentEnrichment:
    @pytest.mark.asyncio
    async def test_generates_and_merges(self, memory_repo, gent, checkpoint_store):
        record_id = memory_repo.add_record(
            gent, "Trimsalon Bella", scraped_content={"googleRating": 4.5, "aboutUs": "Kort."}
        )
        client = FakeContentClient()

        result = await _service(memory_repo, client, checkpoint_store).run("BE")

        record = memory_repo.get(record_id)
        assert record.scraped_content["aboutUs"] == ABOUT
        assert record.scraped_content["googleRating"] == 4.5
        assert record.scraped_content["contentSource"] == "openai_pipeline"
        assert "contentGeneratedAt" in record.scraped_content
        assert record.scraped_content["targetAudience"] == "Hondeneigenaren in Gent."
        assert record.description == ABOUT[:500]
        assert result.enriched == 1
        assert result.complete is True
        assert result.remaining == 0
        assert checkpoint_store.load("enrichment", "BE") is None

    @pytest.mark.asyncio
    async def test_uses_country_default_language(self, memory_repo, gent, checkpoint_store):
        memory_repo.add_record(gent, "Trimsalon Bella")
        client = FakeContentClient()

        await _service(memory_repo, client, checkpoint_store).run("BE")

        assert "Schrijf in vloeiend Nederlands." in client.prompts[0]

    @pytest.mark.asyncio
    async def test_complete_records_are_not_selected(self, memory_repo, gent, checkpoint_store):
        memory_repo.add_record(gent, "Klaar", scraped_content={"aboutUs": ABOUT})
        client = FakeContentClient()

        result = await _service(memory_repo, client, checkpoint_store).run("BE")

        assert client.prompts == []
        assert result.processed == 0
        assert result.complete is True

    @pytest.mark.asyncio
    async def test_failures_are_logged_and_cursor_advances(
        self, memory_repo, gent, checkpoint_store
    ):
        failing = memory_repo.add_record(gent, "Hondenhotel Zon")
        memory_repo.add_record(gent, "Kattenpension Maan")
        memory_repo.add_record(gent, "Dierenkliniek Ster")
        client = FakeContentClient(
            {
                "Hondenhotel Zon": ProviderError("openai", "rate limited", attempts=3),
                "Kattenpension Maan": ContentValidationError("highlights"),
            }
        )

        result = await _service(memory_repo, client, checkpoint_store).run("BE")

        assert result.processed == 3
        assert result.enriched == 1
        assert result.failed == 2
        assert result.complete is False
        assert result.remaining == 2
        progress = checkpoint_store.load("enrichment", "BE")
        assert progress.last_processed_id == 3
        assert progress.stats.failed == 2
        assert progress.errors[0].record_id == failing
        assert "rate limited" in progress.errors[0].message

    @pytest.mark.asyncio
    async def test_resume_does_not_repeat_work(self, memory_repo, gent, checkpoint_store):
        for name in ("Een", "Twee", "Drie"):
            memory_repo.add_record(gent, name)
        client = FakeContentClient()

        first = await _service(memory_repo, client, checkpoint_store, batch_size=2).run(
            "BE", max_batches=1
        )
        assert first.processed == 2
        assert first.complete is False
        assert checkpoint_store.load("enrichment", "BE").last_processed_id == 2

        second = await _service(memory_repo, client, checkpoint_store, batch_size=2).run("BE")

        assert second.processed == 1
        assert len(client.prompts) == 3
        assert second.complete is True

    @pytest.mark.asyncio
    async def test_cursor_saved_after_every_record(self, memory_repo, gent, checkpoint_store):
        memory_repo.add_record(gent, "Een")
        memory_repo.add_record(gent, "Twee")

        async def broken_merge(record_id, patch):
            if record_id == 2:
                raise PersistenceError("connection lost")
            memory_repo.records[record_id]["scraped_content"] = patch

        memory_repo.merge_structured_content = broken_merge
        with pytest.raises(PersistenceError):
            await _service(memory_repo, FakeContentClient(), checkpoint_store).run("BE")

        assert checkpoint_store.load("enrichment", "BE").last_processed_id == 1

    @pytest.mark.asyncio
    async def test_dry_run_lists_first_batch_only(self, memory_repo, gent, checkpoint_store):
        for n in range(5):
            memory_repo.add_record(gent, f"Zaak {n}")
        client = FakeContentClient()

        result = await _service(memory_repo, client, checkpoint_store, batch_size=2).run(
            "BE", dry_run=True
        )

        assert result.queried == 2
        assert result.batches == 1
        assert client.prompts == []
        assert memory_repo.writes == 0
        assert not checkpoint_store.directory.exists()


@pytest.mark.unit
class TestValidate:
    @pytest.mark.asyncio
    async def test_stats(self, memory_repo, gent, checkpoint_store):
        memory_repo.add_record(gent, "Vol", scraped_content={"aboutUs": "x" * 120})
        memory_repo.add_record(
            gent, "Half", scraped_content={"aboutUs": "x" * 60}, opening_hours={"mon": "9-17"}
        )
        memory_repo.add_record(gent, "Leeg")

        stats = await _service(memory_repo, None, checkpoint_store).validate("BE")

        assert (stats.total, stats.enriched, stats.partial, stats.unenriched) == (3, 1, 1, 1)
        assert stats.missing_hours == 2
        assert memory_repo.writes == 0

    def test_format_stats(self):
        table = format_stats("BE", EnrichmentStats(total=4, enriched=1, partial=1, unenriched=2))
        assert "Enrichment statistics for BE" in table
        assert "Not enriched" in table
        assert "(50%)" in table
