"""
Integration tests for the FastAPI backend API.
"""

import os
import shutil
import sys
import tempfile
from unittest.mock import patch

from fastapi.testclient import TestClient

# Add backend to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../backend"))

from config import SearchSettings
from main import create_app
from storage import ContextStorage


def context_payload(context_id, title, content="", **extra):
    payload = {"id": context_id, "title": title, "content": content}
    payload.update(extra)
    return payload


class TestFastAPIEndpoints:
    """Test suite for FastAPI endpoints."""

    def setup_method(self):
        """Create an app over a temporary context directory."""
        self.temp_dir = tempfile.mkdtemp()
        self.storage = ContextStorage(root=os.path.join(self.temp_dir, "contexts"))
        self.app = create_app(storage=self.storage, settings=SearchSettings())
        self.client = TestClient(self.app)

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def save(self, context_id, title, content="", **extra):
        response = self.client.put(f"/contexts/{context_id}", json=context_payload(context_id, title, content, **extra))
        assert response.status_code == 200
        return response.json()

    def test_health(self):
        response = self.client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_save_and_search(self):
        saved = self.save("c1", "Machine Learning Basics", "Neural networks", tags=["ai"], type="research")
        self.save("c2", "Cooking Pasta", "Boil water")

        assert saved["id"] == "c1"
        assert "createdAt" in saved

        response = self.client.post("/search", json={"query": "machine learning"})
        assert response.status_code == 200
        data = response.json()
        assert data["totalCount"] == 1
        assert data["searchType"] == "text"
        hit = data["results"][0]
        assert hit["context"]["id"] == "c1"
        assert "title" in hit["matchedFields"]
        assert {f["field"] for f in data["facets"]} == {"type", "importance", "tags"}

    def test_search_with_filters_and_options(self):
        self.save("c1", "Report alpha", "numbers", type="research", ownerId="alice")
        self.save("c2", "Report beta", "numbers", type="general", ownerId="bob")

        response = self.client.post(
            "/search",
            json={
                "query": "report",
                "filters": {"ownerId": "bob"},
                "options": {"limit": "abc", "sortBy": "bogus", "sortOrder": "asc"},
            },
        )

        assert response.status_code == 200
        assert [hit["context"]["id"] for hit in response.json()["results"]] == ["c2"]

    def test_save_rejects_mismatched_id(self):
        response = self.client.put("/contexts/c1", json=context_payload("c2", "Wrong"))
        assert response.status_code == 400

    def test_delete_context(self):
        self.save("c1", "Machine Learning Basics")

        response = self.client.delete("/contexts/c1")
        assert response.status_code == 200
        assert response.json()["success"] is True

        data = self.client.post("/search", json={"query": "machine"}).json()
        assert data["results"] == []
        assert self.storage.get_record("c1") is None

    def test_delete_unknown_context(self):
        response = self.client.delete("/contexts/missing")
        assert response.status_code == 404

    def test_rebuild_and_stats(self):
        self.save("c1", "First", token_count=10)
        self.save("c2", "Second", tokenCount=30)

        rebuild = self.client.post("/admin/rebuild-index")
        assert rebuild.status_code == 200
        assert rebuild.json() == {"success": True, "executed": True, "entryCount": 2}

        stats = self.client.get("/stats").json()
        assert stats["entryCount"] == 2
        assert stats["totalTokens"] == 40
        assert stats["avgTokensPerEntry"] == 20.0
        assert stats["rebuilding"] is False
        assert stats["lastRebuildTime"] is not None

    def test_rebuild_failure_is_reported(self):
        with patch.object(self.storage, "list_records", side_effect=OSError("disk gone")):
            response = self.client.post("/admin/rebuild-index")
        assert response.status_code == 500

    def test_suggest(self):
        self.save("c1", "Machine Learning Basics", tags=["ml-ops"])
        self.client.post("/admin/rebuild-index")

        response = self.client.get("/suggest", params={"q": "ml"})
        assert response.status_code == 200
        assert response.json() == {"suggestions": ["ml-ops"]}

    def test_suggest_limit_is_bounded(self):
        response = self.client.get("/suggest", params={"q": "ml", "limit": 50})
        assert response.status_code == 422

    def test_lifespan_starts_and_stops_refresh(self):
        with TestClient(self.app) as client:
            assert client.get("/health").status_code == 200
            assert self.app.state.search_service.lifecycle._timer is not None
        assert self.app.state.search_service.lifecycle._timer is None
