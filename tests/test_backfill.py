"""Tests for the varietal and producer backfill."""

from sqlalchemy.orm import Session

from wine_selector.db.models import WineDB
from wine_selector.ingestion.adapters.sample import SampleFeedAdapter
from wine_selector.ingestion.backfill import backfill_canonical_fields, recanonicalize
from wine_selector.ingestion.catalog_sync import sync_catalog

UNKNOWN_SEARCH_URL = (
    "https://www.vivino.com/search/wines?q=Unknown%20Producer%20Mission%20Hill%20Reserve"
    "%20VQA%20Chardonnay%20Canada"
)


def add_wine(
    session: Session,
    name: str,
    producer: str = "Unknown Producer",
    varietal: str = "Blend",
    vivino_url: str | None = None,
    sub_region: str = "Okanagan Valley",
) -> WineDB:
    wine = WineDB(
        name=name,
        producer=producer,
        type="White",
        varietal=varietal,
        country="Canada",
        sub_region=sub_region,
        vivino_url=vivino_url,
    )
    session.add(wine)
    session.commit()
    return wine


class TestRecanonicalize:
    """Tests for the per-wine rules."""

    def test_unknown_producer_is_filled_in(self) -> None:
        """Test a stale row gets the current varietal, producer and search link."""
        wine = WineDB(
            name="Mission Hill Reserve VQA Chardonnay",
            producer="Unknown Producer",
            varietal="Blend",
            country="Canada",
            vivino_url=UNKNOWN_SEARCH_URL,
        )
        fields = recanonicalize(wine)

        assert fields.varietal == "Chardonnay"
        assert fields.producer == "Mission Hill"
        assert fields.vivino_url.startswith("https://www.vivino.com/search/wines?q=Mission%20Hill")
        assert "Unknown" not in fields.vivino_url

    def test_known_producer_follows_current_rules(self) -> None:
        """Test a producer saved with leftover boilerplate is re-cleaned."""
        wine = WineDB(
            name="Mission Hill Reserve VQA Chardonnay",
            producer="Mission Hill Reserve",
            varietal="Chardonnay",
            country="Canada",
        )
        assert recanonicalize(wine).producer == "Mission Hill"

    def test_feed_producer_is_kept(self) -> None:
        """Test a producer unrelated to the extracted one is left alone."""
        wine = WineDB(
            name="Cloudy Bay Sauvignon Blanc",
            producer="Pernod Ricard Winemakers",
            varietal="Sauvignon Blanc",
            country="New Zealand",
        )
        assert recanonicalize(wine).producer == "Pernod Ricard Winemakers"

    def test_blend_never_overwrites(self) -> None:
        """Test a stored varietal survives a name without a grape."""
        wine = WineDB(
            name="Grand Rouge",
            producer="Unknown Producer",
            varietal="Gamay",
            country="France",
        )
        fields = recanonicalize(wine)
        assert fields.varietal == "Gamay"
        assert fields.producer == "Unknown Producer"

    def test_direct_link_is_kept(self) -> None:
        """Test a matched link is never replaced by a search link."""
        url = "https://www.vivino.com/mission-hill/w/42"
        wine = WineDB(
            name="Mission Hill Chardonnay",
            producer="Unknown Producer",
            varietal="Chardonnay",
            country="Canada",
            vivino_url=url,
        )
        fields = recanonicalize(wine)
        assert fields.producer == "Mission Hill"
        assert fields.vivino_url == url


class TestBackfillCanonicalFields:
    """Tests for backfill_canonical_fields."""

    def test_updates_stale_rows(self, test_session: Session) -> None:
        """Test stale labels and links are rewritten."""
        wine = add_wine(
            test_session, "Mission Hill Reserve VQA Chardonnay", vivino_url=UNKNOWN_SEARCH_URL
        )
        add_wine(test_session, "Grand Rouge", varietal="Gamay")

        result = backfill_canonical_fields(test_session)

        assert result.wines == 2
        assert result.varietals_updated == 1
        assert result.producers_updated == 1
        assert result.search_links_rewritten == 1
        assert result.still_unknown_producer == 1
        test_session.refresh(wine)
        assert (wine.producer, wine.varietal) == ("Mission Hill", "Chardonnay")

    def test_dry_run(self, test_session: Session) -> None:
        """Test a dry run counts changes without writing."""
        wine = add_wine(test_session, "Mission Hill Reserve VQA Chardonnay")

        result = backfill_canonical_fields(test_session, dry_run=True)

        assert result.producers_updated == 1
        assert result.to_dict()["dry_run"] is True
        test_session.refresh(wine)
        assert wine.producer == "Unknown Producer"

    def test_identity_collision_is_skipped(self, test_session: Session) -> None:
        """Test a rewrite that would duplicate another wine is skipped."""
        add_wine(
            test_session,
            "Mission Hill Chardonnay",
            producer="Mission Hill",
            varietal="Chardonnay",
        )
        stale = add_wine(test_session, "Mission Hill Chardonnay")

        result = backfill_canonical_fields(test_session)

        assert result.collisions == 1
        assert result.producers_updated == 0
        test_session.refresh(stale)
        assert stale.producer == "Unknown Producer"

    def test_fresh_sample_catalog_is_unchanged(self, test_session: Session) -> None:
        """Test rows synced with the current rules need no changes."""
        sync_catalog(
            test_session, SampleFeedAdapter({"source_name": "sample"}).catalog_items(), source="sample"
        )

        result = backfill_canonical_fields(test_session)

        assert result.wines == 9
        assert (result.varietals_updated, result.producers_updated) == (0, 0)
        assert result.search_links_rewritten == 0
