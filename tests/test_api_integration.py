from __future__ import annotations

import unittest
from datetime import timedelta

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.abtest.assigner import ExperimentAssigner, assign_variant
from app.abtest.recorder import ExposureRecord, InMemoryExposureRecorder
from app.api.deps import get_assigner, get_quality_cache, get_signal_store
from app.api.v1.router import api_router
from app.core.config import settings
from app.ranking.entities import Interaction, InteractionType, TagUsageStats, utcnow
from app.ranking.signal_store import InMemorySignalStore
from tests.signal_fixtures import make_listing


def _candidate(item_id: str, title: str, **extra) -> dict:
    return {"itemId": item_id, "title": title, **extra}


class ApiIntegrationTestCase(unittest.TestCase):
    def setUp(self) -> None:
        now = utcnow()
        self.store = InMemorySignalStore(
            listings=[
                make_listing(
                    "shoe",
                    "Nike krosovka",
                    tags=("krossovka", "nike"),
                    created_days_ago=None,
                ),
                make_listing("tv", "Televizor Samsung", tags=("tv",), created_days_ago=None),
            ],
            usage=[TagUsageStats(tag="telegram-bot", usage_count=40, search_count=100, match_count=80, last_used=now)],
            interactions=[
                Interaction(
                    item_id="shoe",
                    user_id="u1",
                    interaction_type=InteractionType.CLICK,
                    timestamp=now - timedelta(hours=1),
                    matched_tags=frozenset({"krossovka"}),
                )
                for _ in range(4)
            ],
        )
        self.recorder = InMemoryExposureRecorder()
        self.assigner = ExperimentAssigner(self.recorder)

        app = FastAPI()
        app.include_router(api_router, prefix="/api/v1")
        app.dependency_overrides[get_signal_store] = lambda: self.store
        app.dependency_overrides[get_assigner] = lambda: self.assigner
        app.dependency_overrides[get_quality_cache] = lambda: None
        self._client = TestClient(app)

    # ---------- ranking ----------

    def test_search_ranks_supplied_candidates(self) -> None:
        resp = self._client.post(
            "/api/v1/ranking/search",
            json={
                "query": "krossovka",
                "candidates": [
                    _candidate("tv", "Televizor"),
                    _candidate("shoe", "Nike krosovka erkaklar uchun", tags=["krossovka"]),
                ],
            },
        )

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["code"], 200)
        data = body["data"]
        self.assertEqual(data["formula"], "standard")
        self.assertIsNone(data["experimentVariant"])
        self.assertEqual(data["total"], 2)
        self.assertEqual([i["itemId"] for i in data["items"]], ["shoe", "tv"])
        self.assertEqual(data["items"][0]["matchedTags"], ["krossovka"])

    def test_search_uses_active_listings_and_user_bucket(self) -> None:
        resp = self._client.post("/api/v1/ranking/search", json={"query": "nike", "userId": "u1"})

        self.assertEqual(resp.status_code, 200)
        data = resp.json()["data"]
        variant = assign_variant(settings.RANKING_EXPERIMENT_ID, "u1", "ranking_formula").value
        self.assertEqual(data["experimentVariant"], variant)
        self.assertEqual(data["formula"], "standard" if variant == "A" else "personalized")
        self.assertEqual(data["items"][0]["itemId"], "shoe")

    def test_search_pagination_with_cursor(self) -> None:
        first = self._client.post("/api/v1/ranking/search", json={"query": "nike", "limit": 1}).json()["data"]
        self.assertIsNotNone(first["nextCursor"])

        second = self._client.post(
            "/api/v1/ranking/search",
            json={"query": "nike", "limit": 1, "cursor": first["nextCursor"]},
        ).json()["data"]

        self.assertEqual([i["itemId"] for i in first["items"]], ["shoe"])
        self.assertEqual([i["itemId"] for i in second["items"]], ["tv"])
        self.assertIsNone(second["nextCursor"])

    def test_search_rejects_bad_input(self) -> None:
        self.assertEqual(self._client.post("/api/v1/ranking/search", json={"query": " ?! "}).status_code, 400)
        self.assertEqual(
            self._client.post("/api/v1/ranking/search", json={"query": "nike", "cursor": "garbage"}).status_code,
            400,
        )
        self.assertEqual(self._client.post("/api/v1/ranking/search", json={"query": "nike", "limit": 0}).status_code, 422)

    def test_context_tags_without_query(self) -> None:
        resp = self._client.post("/api/v1/ranking/search", json={"query": "", "contextTags": ["tv"]})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["data"]["items"][0]["itemId"], "tv")

    def test_user_preferences(self) -> None:
        resp = self._client.get("/api/v1/ranking/preferences/u1")

        self.assertEqual(resp.status_code, 200)
        data = resp.json()["data"]
        self.assertEqual(data["windowDays"], settings.PERSONALIZATION_WINDOW_DAYS)
        self.assertEqual([p["tag"] for p in data["preferences"]], ["krossovka"])
        self.assertEqual(data["preferences"][0]["clickCount"], 4)
        self.assertAlmostEqual(data["preferences"][0]["preferenceScore"], 0.2, places=2)

        custom = self._client.get("/api/v1/ranking/preferences/u1", params={"windowDays": 7}).json()["data"]
        self.assertEqual(custom["windowDays"], 7)

    # ---------- abtest ----------

    def test_assign_is_stable(self) -> None:
        params = {"experimentId": "exp-1", "subjectId": "12345", "experimentType": "ranking_formula"}
        variants = {self._client.get("/api/v1/abtest/assign", params=params).json()["data"]["variant"] for _ in range(5)}

        self.assertEqual(variants, {assign_variant("exp-1", "12345", "ranking_formula").value})

    def test_assign_unknown_type(self) -> None:
        params = {"experimentId": "exp-1", "subjectId": "1", "experimentType": "colour"}
        self.assertEqual(self._client.get("/api/v1/abtest/assign", params=params).status_code, 400)

    def test_exposure_and_conversion_are_accepted(self) -> None:
        payload = {"experimentId": "exp-1", "subjectId": "u1", "experimentType": "ui_variant", "itemId": "shoe"}
        resp = self._client.post("/api/v1/abtest/exposures", json=payload)

        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["data"]["accepted"])
        self.assertEqual(resp.json()["data"]["variant"], assign_variant("exp-1", "u1", "ui_variant").value)

        bad = self._client.post("/api/v1/abtest/conversions", json={**payload, "stage": "refund"})
        self.assertEqual(bad.status_code, 400)
        ok = self._client.post("/api/v1/abtest/conversions", json={**payload, "stage": "contact"})
        self.assertEqual(ok.status_code, 200)

    def test_results_serialize_missing_p_value_as_null(self) -> None:
        now = utcnow()
        self.recorder.records = [
            ExposureRecord("exp-2", "ranking_formula", "A", f"a{i}", now, converted=i < 1) for i in range(10)
        ] + [ExposureRecord("exp-2", "ranking_formula", "B", f"b{i}", now, converted=i < 3) for i in range(10)]

        resp = self._client.get(
            "/api/v1/abtest/results", params={"experimentId": "exp-2", "experimentType": "ranking_formula"}
        )

        self.assertEqual(resp.status_code, 200)
        rows = resp.json()["data"]
        self.assertEqual([r["variant"] for r in rows], ["B", "A"])
        self.assertTrue(rows[0]["isWinner"])
        self.assertIsNotNone(rows[0]["pValue"])
        self.assertIsNone(rows[1]["pValue"])

    # ---------- health ----------

    def test_item_health(self) -> None:
        resp = self._client.get("/api/v1/health/shoe", params=[("queries", "nike"), ("queries", "krossovka")])

        self.assertEqual(resp.status_code, 200)
        data = resp.json()["data"]
        self.assertEqual(data["itemId"], "shoe")
        self.assertEqual(data["factors"]["ranking"], 20)
        self.assertEqual(data["score"], sum(data["factors"].values()))
        self.assertIn(data["badge"]["emoji"], ("🟢", "🟡", "🔴"))
        self.assertEqual(data["averageRank"], 1.0)

    def test_item_health_unknown(self) -> None:
        self.assertEqual(self._client.get("/api/v1/health/missing").status_code, 404)

    # ---------- tags ----------

    def test_tag_quality(self) -> None:
        resp = self._client.get("/api/v1/tags/quality", params={"tags": "telegram-bot,unknown"})

        self.assertEqual(resp.status_code, 200)
        scores = resp.json()["data"]["scores"]
        self.assertEqual(set(scores), {"telegram-bot", "unknown"})
        self.assertAlmostEqual(scores["telegram-bot"]["matchRate"], 0.8)
        self.assertIn("insufficient data", scores["unknown"]["reasons"])

    def test_tag_lists(self) -> None:
        top = self._client.get("/api/v1/tags/top").json()["data"]
        self.assertEqual([t["tag"] for t in top], ["telegram-bot"])
        suggestions = self._client.get("/api/v1/tags/suggestions", params={"limit": 5}).json()["data"]
        self.assertEqual([t["tag"] for t in suggestions["effective"]], ["telegram-bot"])
        self.assertEqual(self._client.get("/api/v1/tags/top", params={"limit": 0}).status_code, 422)

    def test_filter_tags(self) -> None:
        resp = self._client.post("/api/v1/tags/filter", json={"subjectId": "seller-1", "tags": ["telegram-bot", "new"]})

        self.assertEqual(resp.status_code, 200)
        data = resp.json()["data"]
        self.assertEqual(data["variant"], assign_variant(settings.TAG_QUALITY_EXPERIMENT_ID, "seller-1", "ai_tag_variants").value)
        self.assertEqual(data["tags"], ["telegram-bot", "new"])


if __name__ == "__main__":
    unittest.main()
