"""SQL 存储集成测试：SQLite 内存库，StaticPool 让工作线程共享同一个连接。"""

from __future__ import annotations

import asyncio
import unittest
from datetime import timedelta, timezone

from sqlalchemy import create_engine, select, update
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.abtest.recorder import ConversionStage, ExposureRecord, SqlExposureRecorder
from app.core.database import Base
from app.jobs.refresh_tag_metrics import refresh
from app.models import ExperimentExposure, ListingInteraction, MarketListing, TagConversionMetric, TagUsage
from app.ranking.entities import InteractionType, utcnow
from app.ranking.repository import SqlSignalStore, to_naive_utc
from tests.signal_fixtures import NOW, days_ago


class SqlTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def tearDown(self) -> None:
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def add_all(self, *rows) -> None:
        db = self.session_factory()
        try:
            db.add_all(rows)
            db.commit()
        finally:
            db.close()


class SqlSignalStoreTestCase(SqlTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.store = SqlSignalStore(self.session_factory)
        self.add_all(
            MarketListing(
                listing_id="shoe",
                title="Nike krossovka",
                description="Original",
                tags=["krossovka", "nike"],
                is_boosted=True,
                image_url="https://cdn.example/shoe.jpg",
                created_at=to_naive_utc(days_ago(2)),
            ),
            MarketListing(listing_id="sold", title="Old phone", tags=[], status="sold"),
            ListingInteraction(
                listing_id="shoe", user_id="u1", interaction_type="view",
                matched_tags=["krossovka"], created_at=to_naive_utc(days_ago(1)),
            ),
            ListingInteraction(
                listing_id="shoe", user_id="u1", interaction_type="click",
                matched_tags=["krossovka"], search_query="krossovka", created_at=to_naive_utc(days_ago(1)),
            ),
            ListingInteraction(
                listing_id="shoe", user_id="u1", interaction_type="share",
                matched_tags=["krossovka"], created_at=to_naive_utc(days_ago(1)),
            ),
            ListingInteraction(
                listing_id="shoe", user_id="u1", interaction_type="order",
                matched_tags=["nike"], created_at=to_naive_utc(days_ago(45)),
            ),
            TagUsage(tag="krossovka", usage_count=12, search_count=40, match_count=30, last_used=to_naive_utc(days_ago(1))),
            TagConversionMetric(tag="krossovka", view_count=100, click_count=20, contact_count=5, order_count=1),
        )

    def test_get_item_converts_row(self) -> None:
        listing = asyncio.run(self.store.get_item("shoe"))

        self.assertEqual(listing.tags, ("krossovka", "nike"))
        self.assertTrue(listing.is_boosted)
        self.assertEqual(listing.created_at, days_ago(2))
        self.assertEqual(listing.created_at.tzinfo, timezone.utc)
        self.assertIsNone(asyncio.run(self.store.get_item("missing")))

    def test_only_active_items_are_candidates(self) -> None:
        items = asyncio.run(self.store.list_active_items())
        self.assertEqual([i.item_id for i in items], ["shoe"])

    def test_interaction_counts_ignore_unknown_types(self) -> None:
        counts = asyncio.run(self.store.get_item_interaction_counts("shoe"))
        self.assertEqual((counts.views, counts.clicks, counts.contacts, counts.orders), (1, 1, 0, 1))

    def test_user_interactions_within_window(self) -> None:
        interactions = asyncio.run(self.store.list_user_interactions("u1", days_ago(30)))

        self.assertEqual(
            sorted(i.interaction_type for i in interactions),
            [InteractionType.CLICK, InteractionType.VIEW],
        )
        click = next(i for i in interactions if i.interaction_type is InteractionType.CLICK)
        self.assertEqual(click.matched_tags, frozenset({"krossovka"}))
        self.assertEqual(click.query, "krossovka")

    def test_tag_snapshots(self) -> None:
        usage = asyncio.run(self.store.get_tag_usage("krossovka"))
        metrics = asyncio.run(self.store.get_tag_conversion("krossovka"))

        self.assertEqual(usage.match_rate, 0.75)
        self.assertEqual(usage.last_used, days_ago(1))
        self.assertEqual(metrics.click_through_rate, 0.2)
        self.assertIsNone(asyncio.run(self.store.get_tag_usage("unknown")))
        self.assertEqual([u.tag for u in asyncio.run(self.store.list_tag_usage())], ["krossovka"])


class SqlExposureRecorderTestCase(SqlTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.recorder = SqlExposureRecorder(self.session_factory)

    def record(self, subject: str, created_at, variant: str = "A") -> ExposureRecord:
        return ExposureRecord(
            experiment_id="exp-1",
            experiment_type="ranking_formula",
            variant=variant,
            subject_id=subject,
            created_at=created_at,
            metadata={"source": "search"},
        )

    def test_mark_stage_updates_latest_exposure(self) -> None:
        async def run():
            await self.recorder.insert_exposure(self.record("u1", days_ago(2)))
            await self.recorder.insert_exposure(self.record("u1", days_ago(1)))
            clicked = await self.recorder.mark_stage(
                "exp-1", "ranking_formula", "u1", ConversionStage.CLICK, metadata={}, at=NOW
            )
            ordered = await self.recorder.mark_stage(
                "exp-1", "ranking_formula", "u1", ConversionStage.ORDER, metadata={"orderId": "o-7"}, at=NOW
            )
            missing = await self.recorder.mark_stage(
                "exp-1", "ranking_formula", "ghost", ConversionStage.ORDER, metadata={}, at=NOW
            )
            return clicked, ordered, missing, await self.recorder.list_exposures("exp-1", "ranking_formula")

        clicked, ordered, missing, exposures = asyncio.run(run())

        self.assertTrue(clicked)
        self.assertTrue(ordered)
        self.assertFalse(missing)
        latest = max(exposures, key=lambda r: r.created_at)
        earliest = min(exposures, key=lambda r: r.created_at)
        self.assertTrue(latest.converted)
        self.assertTrue(latest.clicked)
        self.assertEqual(latest.converted_at, NOW)
        self.assertEqual(latest.metadata, {"source": "search", "clicked": True, "orderId": "o-7", "converted": True})
        self.assertFalse(earliest.converted)

    def test_metadata_column_name(self) -> None:
        asyncio.run(self.recorder.insert_exposure(self.record("u2", NOW, variant="B")))

        db = self.session_factory()
        try:
            row = db.execute(select(ExperimentExposure)).scalars().one()
        finally:
            db.close()

        self.assertEqual(ExperimentExposure.__table__.c["metadata"].name, "metadata")
        self.assertEqual(row.extra, {"source": "search"})
        self.assertEqual(row.variant, "B")


class RefreshTagMetricsTestCase(SqlTestCase):
    def test_refresh_rebuilds_conversion_rows(self) -> None:
        recent = to_naive_utc(utcnow() - timedelta(hours=2))
        old = to_naive_utc(utcnow() - timedelta(days=60))
        self.add_all(
            *[
                ListingInteraction(listing_id="a", user_id=f"u{i}", interaction_type="view",
                                   matched_tags=["bot"], created_at=recent)
                for i in range(4)
            ],
            ListingInteraction(listing_id="a", user_id="u0", interaction_type="click",
                               matched_tags=["bot"], created_at=recent),
            ListingInteraction(listing_id="b", user_id="u9", interaction_type="order",
                               matched_tags=["old-tag"], created_at=old),
        )

        metrics, stale = refresh(self.session_factory, 30)
        refresh(self.session_factory, 30)

        self.assertEqual([m.tag for m in metrics], ["bot"])
        self.assertEqual(stale, [])
        db = self.session_factory()
        try:
            rows = db.execute(select(TagConversionMetric)).scalars().all()
        finally:
            db.close()
        self.assertEqual(len(rows), 1)
        self.assertEqual((rows[0].view_count, rows[0].click_count), (4, 1))
        self.assertAlmostEqual(rows[0].click_through_rate, 0.25)

    def test_tag_leaving_window_is_removed(self) -> None:
        recent = to_naive_utc(utcnow() - timedelta(hours=2))
        self.add_all(
            *[
                ListingInteraction(listing_id="a", user_id=f"u{i}", interaction_type="view",
                                   matched_tags=["gone"], created_at=recent)
                for i in range(5)
            ],
            ListingInteraction(listing_id="b", user_id="u9", interaction_type="view",
                               matched_tags=["stays"], created_at=recent),
        )
        refresh(self.session_factory, 30)
        store = SqlSignalStore(self.session_factory)
        self.assertEqual(asyncio.run(store.get_tag_conversion("gone")).view_count, 5)

        db = self.session_factory()
        try:
            db.execute(
                update(ListingInteraction)
                .where(ListingInteraction.listing_id == "a")
                .values(created_at=to_naive_utc(utcnow() - timedelta(days=90)))
            )
            db.commit()
        finally:
            db.close()

        metrics, stale = refresh(self.session_factory, 30)

        self.assertEqual([m.tag for m in metrics], ["stays"])
        self.assertEqual(stale, ["gone"])
        self.assertIsNone(asyncio.run(store.get_tag_conversion("gone")))
        self.assertEqual(asyncio.run(store.get_tag_conversion("stays")).view_count, 1)

    def test_invalid_window(self) -> None:
        with self.assertRaises(ValueError):
            refresh(self.session_factory, 0)


if __name__ == "__main__":
    unittest.main()
