from __future__ import annotations

import asyncio
import unittest

from app.health.aggregator import (
    REC_ADD_IMAGE,
    REC_ADD_TAGS,
    REC_CONVERSION_LOW,
    REC_CONVERSION_MID,
    REC_CRITICAL,
    REC_ENGAGEMENT_LOW,
    REC_ENGAGEMENT_MID,
    REC_EXTEND_DESCRIPTION,
    REC_RANKING_LOW,
    REC_RANKING_MID,
    HealthScoreAggregator,
    HealthStatus,
    ItemNotFoundError,
    average_rank,
    badge,
    completeness,
    compute_health_score,
    conversion_points,
    engagement_points,
    ranking_points,
)
from app.ranking.composer import RankingComposer
from app.ranking.entities import InteractionCounts, InteractionType
from app.ranking.personalization import PersonalizationProfile
from app.ranking.quality import TagQualityEvaluator
from app.ranking.relevance import TextRelevanceScorer
from app.ranking.signal_store import InMemorySignalStore
from tests.signal_fixtures import FailingSignalStore, fixed_clock, interaction, make_listing

LONG_DESCRIPTION = "Original Nike krossovka, 42 razmer, yangi holatda, kafolat bilan sotiladi."


def complete_listing(item_id: str = "target", title: str = "Nike krossovka"):
    return make_listing(
        item_id,
        title,
        description=LONG_DESCRIPTION,
        tags=("krossovka", "nike", "sport"),
        image_url="https://cdn.example/target.jpg",
    )


def build_aggregator(store, **kwargs) -> HealthScoreAggregator:
    composer = RankingComposer(
        TextRelevanceScorer(),
        TagQualityEvaluator(store, clock=fixed_clock),
        PersonalizationProfile(store, clock=fixed_clock),
        clock=fixed_clock,
    )
    return HealthScoreAggregator(store, composer, clock=fixed_clock, **kwargs)


class HealthBandsTestCase(unittest.TestCase):
    def test_conversion_bands(self) -> None:
        self.assertEqual(conversion_points(0.15), 30)
        self.assertEqual(conversion_points(0.10), 30)
        self.assertEqual(conversion_points(0.05), 20)
        self.assertEqual(conversion_points(0.02), 15)
        self.assertEqual(conversion_points(0.01), 10)
        self.assertEqual(conversion_points(0.009), 5)

    def test_engagement_bands(self) -> None:
        self.assertEqual(engagement_points(100), 30)
        self.assertEqual(engagement_points(50), 25)
        self.assertEqual(engagement_points(20), 20)
        self.assertEqual(engagement_points(10), 15)
        self.assertEqual(engagement_points(5), 10)
        self.assertEqual(engagement_points(4), 5)

    def test_ranking_bands(self) -> None:
        self.assertEqual(ranking_points(None), 10)
        self.assertEqual(ranking_points(5), 20)
        self.assertEqual(ranking_points(5.5), 15)
        self.assertEqual(ranking_points(20), 10)
        self.assertEqual(ranking_points(30), 5)
        self.assertEqual(ranking_points(31), 0)

    def test_average_rank_caps_outliers(self) -> None:
        self.assertIsNone(average_rank([]))
        self.assertEqual(average_rank([100, 1]), 25.5)

    def test_completeness_penalties(self) -> None:
        points, recs = completeness(make_listing("bare"))
        self.assertEqual(points, 5)
        self.assertEqual(recs, [REC_ADD_TAGS, REC_ADD_IMAGE, REC_EXTEND_DESCRIPTION])

        logo_only = make_listing(
            "logo", description=LONG_DESCRIPTION, tags=("a", "b", "c"), logo_url="https://cdn.example/logo.png"
        )
        self.assertEqual(completeness(logo_only), (20, []))

    def test_badge_thresholds(self) -> None:
        self.assertEqual((badge(70).text, badge(70).emoji), ("Healthy", "🟢"))
        self.assertEqual((badge(69).text, badge(69).emoji), ("Needs improvement", "🟡"))
        self.assertEqual(badge(40).text, "Needs improvement")
        self.assertEqual((badge(39).text, badge(39).emoji), ("Critical", "🔴"))


class ComputeHealthScoreTestCase(unittest.TestCase):
    def test_perfect_listing(self) -> None:
        counts = InteractionCounts(views=100, clicks=10, contacts=5, orders=15)

        result = compute_health_score(counts, complete_listing(), ranks=[1, 2])

        self.assertEqual(result.score, 100)
        self.assertEqual(result.status, HealthStatus.HEALTHY)
        self.assertEqual(result.recommendations, ())
        self.assertEqual(result.average_rank, 1.5)

    def test_no_data_is_flagged_critical_first(self) -> None:
        result = compute_health_score(InteractionCounts(), None)

        self.assertEqual(result.score, 40)
        self.assertEqual(result.status, HealthStatus.NEEDS_IMPROVEMENT)
        self.assertEqual(result.factors.ranking, 10)
        self.assertEqual(result.recommendations, (REC_CRITICAL, REC_CONVERSION_LOW, REC_ENGAGEMENT_LOW))

    def test_middle_bands_get_mid_recommendations(self) -> None:
        counts = InteractionCounts(views=40, clicks=10, contacts=0, orders=2)

        result = compute_health_score(counts, complete_listing(), ranks=[8])

        self.assertEqual(result.factors.conversion, 20)
        self.assertEqual(result.factors.engagement, 25)
        self.assertEqual(result.factors.ranking, 15)
        self.assertEqual(result.recommendations, (REC_CONVERSION_MID, REC_ENGAGEMENT_MID, REC_RANKING_MID))

    def test_low_ranking_recommendation(self) -> None:
        result = compute_health_score(InteractionCounts(views=200, orders=30), complete_listing(), ranks=[51])
        self.assertIn(REC_RANKING_LOW, result.recommendations)
        self.assertEqual(result.factors.ranking, 0)

    def test_critical_status(self) -> None:
        result = compute_health_score(InteractionCounts(views=3), make_listing("bare"), ranks=[51])
        self.assertEqual(result.score, 15)
        self.assertEqual(result.status, HealthStatus.CRITICAL)
        self.assertEqual(result.recommendations[0], REC_CRITICAL)


class HealthScoreAggregatorTestCase(unittest.TestCase):
    def setUp(self) -> None:
        events = [interaction("u", InteractionType.VIEW, ("krossovka",), item_id="target") for _ in range(10)]
        events += [interaction("u", InteractionType.ORDER, ("krossovka",), item_id="target") for _ in range(2)]
        self.store = InMemorySignalStore(
            listings=[complete_listing(), make_listing("other", "Televizor", tags=("tv",))],
            interactions=events,
        )

    def test_health_probes_listing_tags(self) -> None:
        result = asyncio.run(build_aggregator(self.store).health("target"))

        self.assertEqual(result.factors.conversion, 30)
        self.assertEqual(result.factors.engagement, 15)
        self.assertEqual(result.factors.completeness, 20)
        self.assertEqual(result.factors.ranking, 20)
        self.assertEqual(result.score, 85)
        self.assertEqual(result.recommendations, (REC_ENGAGEMENT_MID,))

    def test_rank_beyond_depth(self) -> None:
        aggregator = build_aggregator(self.store, rank_depth=1)
        ranks = asyncio.run(aggregator.probe_ranks(complete_listing(), ["televizor"]))
        self.assertEqual(ranks, [2])

    def test_blank_queries_are_skipped(self) -> None:
        aggregator = build_aggregator(self.store)
        self.assertEqual(asyncio.run(aggregator.probe_ranks(complete_listing(), ["", "  "])), [])

    def test_inactive_listing_is_still_probed(self) -> None:
        class InactiveStore(InMemorySignalStore):
            async def list_active_items(self):
                return []

        store = InactiveStore(listings=[complete_listing()])
        ranks = asyncio.run(build_aggregator(store).probe_ranks(complete_listing(), ["nike"]))
        self.assertEqual(ranks, [1])

    def test_unknown_item(self) -> None:
        with self.assertRaises(ItemNotFoundError):
            asyncio.run(build_aggregator(self.store).health("missing"))

    def test_store_failure_uses_defaults(self) -> None:
        result = asyncio.run(build_aggregator(FailingSignalStore()).health("target"))

        self.assertEqual(result.score, 40)
        self.assertIsNone(result.average_rank)
        self.assertEqual(result.recommendations[0], REC_CRITICAL)


if __name__ == "__main__":
    unittest.main()
