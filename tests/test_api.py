"""
Tests for API Module.
=====================

Exercises the /api routes through FastAPI's TestClient with the same
fake fetcher and Gemini client as the pipeline tests. Background jobs run
to completion inside the request under TestClient.
"""

import pytest
from fastapi.testclient import TestClient

from tests.conftest import CATEGORY_URL, PYTHON_URL


@pytest.fixture
def client(context):
    from ziyuanbao.api.app import create_app

    with TestClient(create_app(context=context)) as test_client:
        yield test_client


# ─────────────────────────────────────────────────────────────────────────────
# Category Endpoints
# ─────────────────────────────────────────────────────────────────────────────


class TestCategoryEndpoints:
    """Tests for category CRUD and discovery."""

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_create_list_update_delete(self, client):
        """Test the category lifecycle."""
        created = client.post(
            "/api/feifei-categories", json={"title": "编程开发", "url": CATEGORY_URL}
        )
        assert created.status_code == 201
        category_id = created.json()["id"]

        listed = client.get("/api/feifei-categories").json()
        assert listed["total"] == 1
        assert listed["items"][0]["title"] == "编程开发"

        updated = client.patch(
            f"/api/feifei-categories/{category_id}", json={"title": "编程"}
        )
        assert updated.json()["title"] == "编程"

        assert client.delete(f"/api/feifei-categories/{category_id}").status_code == 204
        assert client.get(f"/api/feifei-categories/{category_id}").status_code == 404

    def test_invalidate_and_filter(self, client, category):
        """Test the soft-exclude flag and the invalid filter."""
        response = client.patch(f"/api/feifei-categories/{category.id}/invalidate")
        assert response.json()["is_invalid"] is True

        assert client.get("/api/feifei-categories", params={"invalid": False}).json()["total"] == 0

        restored = client.patch(
            f"/api/feifei-categories/{category.id}/invalidate", json={"is_invalid": False}
        )
        assert restored.json()["is_invalid"] is False

    def test_discover_and_parse(self, client, category):
        """Test site discovery and a category crawl."""
        discovered = client.post("/api/parse-feifei-website")
        assert discovered.status_code == 200
        assert discovered.json()["found"] == 3

        parsed = client.post(f"/api/feifei-categories/{category.id}/parse")
        assert parsed.json()["created"] == 2

        page = client.get(
            f"/api/feifei-categories/{category.id}/resources", params={"page_size": 1}
        ).json()
        assert page["total"] == 2
        assert len(page["items"]) == 1
        assert page["items"][0]["tags"]

    def test_unknown_category_is_404(self, client):
        assert client.post("/api/feifei-categories/999/parse").status_code == 404


# ─────────────────────────────────────────────────────────────────────────────
# Resource Endpoints
# ─────────────────────────────────────────────────────────────────────────────


class TestResourceEndpoints:
    """Tests for single-resource operations."""

    def test_fetch_parse_and_get(self, client, staged_resources):
        """Test re-parsing a detail page and reading the stored HTML back."""
        resource_id = staged_resources[0].id

        parsed = client.post(f"/api/feifei-resources/{resource_id}/fetch-and-parse")
        assert parsed.status_code == 200
        assert parsed.json()["coin_price"] == "38"
        assert "course_html" not in parsed.json()

        detail = client.get(f"/api/feifei-resources/{resource_id}").json()
        assert "第一章 入门" in detail["course_html"]

    def test_fetch_failure_is_502(self, client, fake_fetcher, staged_resources):
        fake_fetcher.pages.pop(PYTHON_URL)

        response = client.post(f"/api/feifei-resources/{staged_resources[0].id}/fetch-and-parse")

        assert response.status_code == 502

    def test_patch_resource_outline(self, client, staged_resources, outline_json_chinese):
        """Test saving a hand-edited outline in Chinese keys."""
        response = client.patch(
            f"/api/feifei-resources/{staged_resources[0].id}",
            json={"parsed_content": outline_json_chinese},
        )

        assert response.status_code == 200
        assert '"chapters"' in response.json()["parsed_content"]

    def test_cloud_disk(self, client, staged_resources):
        """Test saving a share link and rejecting text without one."""
        url = f"/api/feifei-resources/{staged_resources[0].id}/cloud-disk"

        saved = client.patch(url, json={"text": "链接: https://pan.baidu.com/s/abc 提取码: a1b2"})
        assert saved.status_code == 200
        assert saved.json()["cloud_disk_code"] == "a1b2"

        assert client.patch(url, json={"text": "提取码: a1b2"}).status_code == 400

    def test_extract_outline(self, client, staged_resources):
        """Test heuristic and AI outline extraction, with and without saving."""
        resource_id = staged_resources[0].id
        client.post(f"/api/feifei-resources/{resource_id}/fetch-and-parse")

        heuristic = client.post(f"/api/feifei-resources/{resource_id}/extract-outline")
        assert heuristic.status_code == 200
        assert heuristic.json()["summary"]["total_lectures"] == 2
        assert heuristic.json()["saved"] is True

        dry_run = client.post(
            f"/api/feifei-resources/{resource_id}/extract-outline",
            json={"mode": "ai", "save": False},
        )
        assert dry_run.json()["mode"] == "ai"
        assert dry_run.json()["saved"] is False

    def test_extract_outline_without_content_is_422(self, client, staged_resources):
        response = client.post(f"/api/feifei-resources/{staged_resources[0].id}/extract-outline")

        assert response.status_code == 422

    def test_to_resource_twice(self, client, staged_resources):
        """Test that a second import is skipped and returns the same catalog id."""
        url = f"/api/feifei-resources/{staged_resources[0].id}/to-resource"

        first = client.post(url).json()
        second = client.post(url).json()

        assert first["created"] is True
        assert second["skipped"] is True
        assert second["catalog_resource_id"] == first["catalog_resource_id"]

        catalog_row = client.get(f"/api/catalog-resources/{first['catalog_resource_id']}")
        assert catalog_row.json()["status"] == "unlisted"

    def test_to_resource_with_outline(self, client, staged_resources, outline_json_chinese):
        response = client.post(
            f"/api/feifei-resources/{staged_resources[0].id}/to-resource",
            json={"parsed_content": outline_json_chinese},
        )

        catalog_id = response.json()["catalog_resource_id"]
        contents = client.get(f"/api/catalog-resources/{catalog_id}").json()["contents"]
        assert '"lectures"' in contents


# ─────────────────────────────────────────────────────────────────────────────
# Batch / Job Endpoints
# ─────────────────────────────────────────────────────────────────────────────


class TestJobEndpoints:
    """Tests for batch operations run as jobs."""

    def test_batch_import_job(self, client, category, staged_resources):
        """Test that a batch import is accepted and runs to completion."""
        response = client.post(f"/api/feifei-categories/{category.id}/batch-add-to-resources")

        assert response.status_code == 202
        job_id = response.json()["id"]
        job = client.get(f"/api/jobs/{job_id}").json()
        assert job["status"] == "completed"
        assert job["succeeded"] == 2

    def test_parse_all_job(self, client, category):
        response = client.post("/api/parse-all-feifei-resources", json={"category_id": category.id})

        assert response.status_code == 202
        job = client.get(f"/api/jobs/{response.json()['id']}").json()
        assert job["status"] == "completed"
        assert job["total"] == 2

    def test_conflicting_job_is_409(self, context, client, category):
        """Test that an active job blocks a second one for the same category."""
        from ziyuanbao.shared.schemas import JobKind

        active = context.jobs.create(JobKind.BATCH_IMPORT, category.id)

        response = client.post(f"/api/feifei-categories/{category.id}/batch-add-to-resources")

        assert response.status_code == 409
        assert response.json()["job_id"] == active.id

    def test_cancel_and_list_jobs(self, context, client, category):
        from ziyuanbao.shared.schemas import JobKind

        job = context.jobs.create(JobKind.BATCH_IMPORT, category.id)

        cancelled = client.post(f"/api/jobs/{job.id}/cancel")
        assert cancelled.json()["cancel_requested"] is True

        active = client.get("/api/jobs", params={"active_only": True}).json()
        assert [item["id"] for item in active] == [job.id]

    def test_unknown_job_is_404(self, client):
        assert client.get("/api/jobs/999").status_code == 404

    def test_import_categories_and_fix_markdown(self, client, category):
        imported = client.post("/api/import-feifei-categories").json()
        assert imported == {"created": 1, "updated": 0}

        assert client.post("/api/fix-markdown").json() == {"fixed": 0}
