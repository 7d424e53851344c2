from __future__ import annotations

import asyncio
import unittest

from app.abtest.assigner import ExperimentAssigner, Variant, assign_variant
from app.abtest.recorder import InMemoryExposureRecorder
from app.ranking.entities import TagUsageStats
from app.ranking.quality import TagQualityEvaluator
from app.ranking.signal_store import InMemorySignalStore
from app.services.tag_analytics_service import TagAnalyticsService
from tests.signal_fixtures import NOW, FailingSignalStore, days_ago, fixed_clock

EXPERIMENT_ID = "ai_tag_quality_v1"


def subject_in(variant: Variant) -> str:
    for i in range(1000):
        subject = f"seller-{i}"
        if assign_variant(EXPERIMENT_ID, subject, "ai_tag_variants") is variant:
            return subject
    raise AssertionError(f"no subject found for {variant}")


def build_service(store, assigner=None) -> TagAnalyticsService:
    assigner = assigner or ExperimentAssigner(InMemoryExposureRecorder(), clock=fixed_clock)
    return TagAnalyticsService(
        store,
        TagQualityEvaluator(store, clock=fixed_clock),
        assigner,
        experiment_id=EXPERIMENT_ID,
        clock=fixed_clock,
    )


def names(stats) -> list[str]:
    return [s.tag for s in stats]


class TagListsTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.service = build_service(
            InMemorySignalStore(
                usage=[
                    TagUsageStats(tag="python", usage_count=50, search_count=100, match_count=90, last_used=days_ago(1)),
                    TagUsageStats(tag="bot", usage_count=80, search_count=10, match_count=1, last_used=days_ago(10)),
                    TagUsageStats(tag="rare", usage_count=5, search_count=2, match_count=0),
                    TagUsageStats(tag="web", usage_count=50, search_count=40, match_count=20, last_used=days_ago(3)),
                ]
            )
        )

    def test_top_tags(self) -> None:
        self.assertEqual(names(asyncio.run(self.service.top_tags())), ["bot", "python", "web", "rare"])
        self.assertEqual(names(asyncio.run(self.service.top_tags(limit=1))), ["bot"])

    def test_trending_tags(self) -> None:
        self.assertEqual(names(asyncio.run(self.service.trending_tags())), ["python", "web"])
        self.assertEqual(names(asyncio.run(self.service.trending_tags(days=30))), ["python", "web", "bot"])

    def test_effective_and_ineffective(self) -> None:
        self.assertEqual(names(asyncio.run(self.service.effective_tags())), ["python", "web", "bot"])
        self.assertEqual(names(asyncio.run(self.service.ineffective_tags())), ["bot"])

    def test_suggestions_bundle(self) -> None:
        suggestions = asyncio.run(self.service.tag_suggestions(limit=2))

        self.assertEqual(names(suggestions.top), ["bot", "python"])
        self.assertEqual(names(suggestions.trending), ["python", "web"])
        self.assertEqual(names(suggestions.effective), ["python", "web"])
        self.assertEqual(names(suggestions.ineffective), ["bot"])

    def test_invalid_arguments(self) -> None:
        with self.assertRaises(ValueError):
            asyncio.run(self.service.top_tags(limit=0))
        with self.assertRaises(ValueError):
            asyncio.run(self.service.trending_tags(days=0))
        with self.assertRaises(ValueError):
            asyncio.run(self.service.quality(["", "  "]))

    def test_store_failure_gives_empty_lists(self) -> None:
        service = build_service(FailingSignalStore())
        self.assertEqual(asyncio.run(service.top_tags()), [])


class FilterSuggestedTagsTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.recorder = InMemoryExposureRecorder()
        self.assigner = ExperimentAssigner(self.recorder, clock=fixed_clock)
        self.service = build_service(
            InMemorySignalStore(
                usage=[
                    TagUsageStats(tag="good", search_count=100, match_count=100, last_used=NOW),
                    TagUsageStats(tag="bad", search_count=100, match_count=10, last_used=NOW),
                ]
            ),
            self.assigner,
        )

    def _filter(self, subject: str, tags, **kwargs):
        async def run():
            result = await self.service.filter_suggested_tags(subject, tags, **kwargs)
            await self.assigner.drain()
            return result

        return asyncio.run(run())

    def test_variant_b_drops_low_quality_but_keeps_new_tags(self) -> None:
        variant, kept = self._filter(subject_in(Variant.B), ["good", "bad", "new", "good"])

        self.assertIs(variant, Variant.B)
        self.assertEqual(kept, ["good", "new"])
        self.assertEqual(len(self.recorder.records), 1)
        self.assertEqual(self.recorder.records[0].metadata, {"tag_count": 3})

    def test_variant_a_returns_tags_unfiltered(self) -> None:
        variant, kept = self._filter(subject_in(Variant.A), ["good", "bad"])

        self.assertIs(variant, Variant.A)
        self.assertEqual(kept, ["good", "bad"])
        self.assertEqual(self.recorder.records[0].variant, "A")

    def test_custom_threshold(self) -> None:
        _, kept = self._filter(subject_in(Variant.B), ["good", "bad"], threshold=0.01)
        self.assertEqual(kept, ["good", "bad"])

    def test_subject_is_required(self) -> None:
        with self.assertRaises(ValueError):
            asyncio.run(self.service.filter_suggested_tags(" ", ["good"]))


if __name__ == "__main__":
    unittest.main()
