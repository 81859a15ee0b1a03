"""
Tests for Pipeline Module.
==========================

Tests for:
- run_batch: per-item isolation, cancellation, progress callbacks
- PipelineService: discovery, category crawl, detail parse, outlines
- Importer: single/batch import, link-once, category resolution
- JobRunner: job lifecycle end to end
"""

import json

import pytest

from tests.conftest import BASE_URL, CATEGORY_URL, PYTHON_URL, REACT_URL


# ─────────────────────────────────────────────────────────────────────────────
# Batch Loop Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestRunBatch:
    """Tests for run_batch."""

    def test_failing_item_does_not_abort(self):
        """Test that one exception is counted and the loop goes on."""
        from ziyuanbao.pipeline.batch import run_batch

        processed = []

        def process(item_id: int) -> bool:
            if item_id == 2:
                raise RuntimeError("boom")
            processed.append(item_id)
            return True

        result = run_batch([1, 2, 3, 4], process)

        assert processed == [1, 3, 4]
        assert (result.total, result.succeeded, result.failed) == (4, 3, 1)
        assert result.failures == {2: "boom"}

    def test_skipped_items_counted(self):
        """Test that a False return counts as skipped."""
        from ziyuanbao.pipeline.batch import run_batch

        result = run_batch([1, 2, 3], lambda item_id: item_id != 2)

        assert (result.succeeded, result.skipped) == (2, 1)

    def test_cancellation_between_items(self):
        """Test that should_cancel stops the loop before the next item."""
        from ziyuanbao.pipeline.batch import run_batch

        seen = []
        result = run_batch(
            [1, 2, 3],
            lambda item_id: seen.append(item_id) or True,
            should_cancel=lambda: len(seen) >= 1,
        )

        assert seen == [1]
        assert result.cancelled is True

    def test_progress_callback(self):
        """Test that on_item reports each item's outcome."""
        from ziyuanbao.pipeline.batch import run_batch

        outcomes = []

        def process(item_id: int) -> bool:
            if item_id == 1:
                raise ValueError("bad")
            return True

        run_batch([1, 2], process, on_item=outcomes.append)

        assert outcomes == [False, True]


# ─────────────────────────────────────────────────────────────────────────────
# Service Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestPipelineService:
    """Tests for the PipelineService class."""

    def test_discover_categories(self, context):
        """Test discovery from the site navigation, twice."""
        result = context.service.discover_categories()
        again = context.service.discover_categories()

        assert (result.found, result.created) == (3, 3)
        assert (again.created, again.updated) == (0, 0)
        _, total = context.staging.list_categories()
        assert total == 3

    def test_parse_category_is_idempotent(self, context, category):
        """Test that re-parsing a listing creates no duplicate rows."""
        first = context.service.parse_category(category.id)
        second = context.service.parse_category(category.id)

        assert (first.links_found, first.created) == (2, 2)
        assert (second.created, second.updated) == (0, 2)
        assert first.stopped_reason == "not_found"
        _, total = context.staging.list_resources(category.id)
        assert total == 2

    def test_parse_category_stores_titles_and_tags(self, context, category):
        """Test the bilingual split and bracket tags on stored rows."""
        context.service.parse_category(category.id)

        resources, _ = context.staging.list_resources(category.id)
        python = next(resource for resource in resources if resource.url == PYTHON_URL)
        assert python.chinese_title == "Python 入门"
        assert python.english_title == "Python Basics"
        assert sorted(tag.name for tag in python.tags) == ["udemy", "中字"]

    def test_fetch_and_parse_resource(self, context, staged_resources):
        """Test that a detail page fills the staged row."""
        resource = context.service.fetch_and_parse_resource(staged_resources[0].id)

        assert resource.coin_price == "38"
        assert resource.resource_category == "编程开发"
        assert resource.has_course_html
        assert "课程简介" in resource.markdown_content
        assert "<p>" not in resource.markdown_content
        assert {"udemy", "Python", "Web"} <= {tag.name for tag in resource.tags}

    def test_fetch_failure_leaves_row_untouched(self, context, fake_fetcher, staged_resources):
        """Test that a failed fetch writes nothing."""
        from ziyuanbao.shared.errors import FetchError

        fake_fetcher.pages.pop(PYTHON_URL)

        with pytest.raises(FetchError):
            context.service.fetch_and_parse_resource(staged_resources[0].id)
        assert context.staging.get_resource(staged_resources[0].id).coin_price is None

    def test_extract_outline_heuristic(self, context, staged_resources):
        """Test outline extraction from stored course HTML."""
        resource_id = staged_resources[0].id
        context.service.fetch_and_parse_resource(resource_id)

        outline = context.service.extract_outline(resource_id)

        stored = json.loads(context.staging.get_resource(resource_id).parsed_content)
        assert outline.chapters[0].title == "第一章 入门"
        assert stored["chapters"][0]["lectures"][0]["title"] == "简介"

    def test_extract_outline_ai(self, context, staged_resources, fake_genai_client):
        """Test AI outline extraction through the injected client."""
        from ziyuanbao.shared.schemas import OutlineMode

        resource_id = staged_resources[0].id
        context.service.fetch_and_parse_resource(resource_id)

        outline = context.service.extract_outline(resource_id, OutlineMode.AI)

        assert fake_genai_client.models.generate_content.called
        assert outline.summary().total_lectures == 2
        stored = json.loads(context.staging.get_resource(resource_id).parsed_content)
        assert "chapters" in stored

    def test_outline_failure_keeps_stored_outline(
        self, context, staged_resources, outline_json_english, fake_genai_client
    ):
        """Test that a failed extraction leaves parsed_content unchanged."""
        from ziyuanbao.shared.errors import OutlineError
        from ziyuanbao.shared.schemas import OutlineMode

        resource_id = staged_resources[0].id
        before = context.staging.update_resource(
            resource_id,
            parsed_content=outline_json_english,
            course_html="<p>没有目录</p>",
        ).parsed_content
        fake_genai_client.models.generate_content.return_value.text = "无法解析"

        with pytest.raises(OutlineError):
            context.service.extract_outline(resource_id, OutlineMode.HEURISTIC)
        with pytest.raises(OutlineError):
            context.service.extract_outline(resource_id, OutlineMode.AI)

        assert context.staging.get_resource(resource_id).parsed_content == before

    def test_compute_outline_without_content(self, context, staged_resources):
        """Test that a row with no course content is reported."""
        from ziyuanbao.shared.errors import OutlineError

        with pytest.raises(OutlineError):
            context.service.compute_outline(staged_resources[0].id)

    def test_save_cloud_disk_text(self, context, staged_resources):
        """Test storing a pasted share link, and rejecting text without one."""
        from ziyuanbao.shared.errors import CloudDiskLinkError

        resource_id = staged_resources[0].id
        resource = context.service.save_cloud_disk_text(
            resource_id, "链接: https://pan.baidu.com/s/abc 提取码: a1b2"
        )
        assert (resource.cloud_disk_url, resource.cloud_disk_code) == (
            "https://pan.baidu.com/s/abc",
            "a1b2",
        )

        with pytest.raises(CloudDiskLinkError):
            context.service.save_cloud_disk_text(resource_id, "没有链接")
        assert context.staging.get_resource(resource_id).cloud_disk_code == "a1b2"

    def test_parse_category_resources(self, context, category):
        """Test crawling a category and parsing every detail page."""
        result = context.service.parse_category_resources(category.id)

        assert (result.total, result.succeeded, result.failed) == (2, 2, 0)
        resources, _ = context.staging.list_resources(category.id)
        assert all(resource.coin_price == "38" for resource in resources)

    def test_parse_category_resources_isolates_failures(self, context, fake_fetcher, category):
        """Test that one broken detail page costs only that item."""
        fake_fetcher.pages.pop(REACT_URL)

        result = context.service.parse_category_resources(category.id)

        assert (result.succeeded, result.failed) == (1, 1)
        assert len(result.failures) == 1

    def test_full_sweep_skips_invalid_and_broken_categories(self, context, fake_fetcher, category):
        """Test the all-categories sweep."""
        broken, _ = context.staging.upsert_category("失效", f"{BASE_URL}/category/missing")
        hidden, _ = context.staging.upsert_category("隐藏", f"{BASE_URL}/category/hidden")
        context.staging.set_category_invalid(hidden.id)

        result = context.service.parse_category_resources()

        assert result.succeeded == 2
        assert broken.url in fake_fetcher.requested
        assert hidden.url not in fake_fetcher.requested


# ─────────────────────────────────────────────────────────────────────────────
# Importer Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestResolveCatalogCategory:
    """Tests for resolve_catalog_category."""

    @pytest.fixture
    def categories(self):
        from ziyuanbao.storage.models import CatalogCategory

        return [
            CatalogCategory(id=1, name="编程开发"),
            CatalogCategory(id=2, name="创意设计"),
            CatalogCategory(id=3, name="Photo Shop"),
        ]

    def test_exact_match_ignores_case_and_spaces(self, categories):
        from ziyuanbao.pipeline.importer import resolve_catalog_category

        assert resolve_catalog_category("编程开发", categories) == 1
        assert resolve_catalog_category("photoshop", categories) == 3

    def test_main_part_of_hyphenated_title(self, categories):
        from ziyuanbao.pipeline.importer import resolve_catalog_category

        assert resolve_catalog_category("编程开发-Python", categories) == 1

    def test_sub_part_of_hyphenated_title(self, categories):
        from ziyuanbao.pipeline.importer import resolve_catalog_category

        assert resolve_catalog_category("素材-创意设计", categories) == 2

    def test_fallbacks(self, categories):
        from ziyuanbao.pipeline.importer import resolve_catalog_category

        assert resolve_catalog_category("音乐制作", categories) == 2
        assert resolve_catalog_category(None, categories) == 1
        assert resolve_catalog_category("音乐", []) is None


class TestImporter:
    """Tests for the Importer class."""

    def test_import_creates_unlisted_catalog_row(self, context, staged_resources):
        """Test the staged → catalog field mapping."""
        resource_id = staged_resources[0].id
        context.service.fetch_and_parse_resource(resource_id)
        context.service.extract_outline(resource_id)
        context.service.save_cloud_disk_text(
            resource_id, "链接: https://pan.baidu.com/s/abc 提取码: a1b2"
        )

        result = context.importer.import_resource(resource_id)

        row = context.catalog.get_resource(result.catalog_resource_id)
        assert result.created is True
        assert row.status == "unlisted"
        assert row.title == "Python 入门"
        assert row.subtitle == "Python Basics"
        assert row.price == 38
        assert row.source_type == "feifei"
        assert row.source_url == PYTHON_URL
        assert (row.resource_url, row.resource_code, row.resource_type) == (
            "https://pan.baidu.com/s/abc",
            "a1b2",
            "baidu",
        )
        assert "chapters" in json.loads(row.contents)
        assert "课程简介" in row.description
        assert context.staging.get_resource(resource_id).linked_resource_id == row.id

    def test_import_twice_creates_one_row(self, context, staged_resources):
        """Test that a linked row is skipped on re-import."""
        resource_id = staged_resources[0].id

        first = context.importer.import_resource(resource_id)
        second = context.importer.import_resource(resource_id)

        assert second.skipped is True
        assert second.catalog_resource_id == first.catalog_resource_id
        assert len(context.catalog.list_resources()) == 1

    def test_concurrent_link_removes_created_row(self, context, staged_resources, monkeypatch):
        """Test that losing a linking race leaves no orphaned catalog row."""
        resource_id = staged_resources[0].id
        create_resource = context.catalog.create_resource
        winner = {}

        def create_then_lose_race(data):
            row = create_resource(data)
            winner["row"] = create_resource({"title": "并发导入", "source_url": PYTHON_URL})
            context.staging.link_resource(resource_id, winner["row"].id)
            return row

        monkeypatch.setattr(context.catalog, "create_resource", create_then_lose_race)

        result = context.importer.import_resource(resource_id)

        assert result.skipped is True
        assert result.catalog_resource_id == winner["row"].id
        assert [row.id for row in context.catalog.list_resources()] == [winner["row"].id]

    def test_import_updates_catalog_row_with_same_source(self, context, staged_resources):
        """Test that an existing catalog row for the URL is reused."""
        existing = context.catalog.create_resource(
            {"title": "旧标题", "source_url": PYTHON_URL, "status": "listed"}
        )

        result = context.importer.import_resource(staged_resources[0].id)

        row = context.catalog.get_resource(existing.id)
        assert result.created is False
        assert result.catalog_resource_id == existing.id
        assert row.title == "Python 入门"
        assert row.status == "listed"

    def test_import_with_fresh_outline(self, context, staged_resources, outline_json_chinese):
        """Test that a passed-in outline is used and stored."""
        from ziyuanbao.shared.schemas import CourseOutline

        resource_id = staged_resources[0].id
        outline = CourseOutline.from_json(outline_json_chinese)

        result = context.importer.import_resource(resource_id, outline=outline)

        row = context.catalog.get_resource(result.catalog_resource_id)
        assert row.contents == outline.to_json()
        assert context.staging.get_resource(resource_id).parsed_content == outline.to_json()

    def test_import_resolves_catalog_category(self, context, staged_resources):
        """Test that the staging category title picks the catalog category."""
        context.catalog.upsert_category("设计")
        context.catalog.upsert_category("编程开发")
        wanted = next(c for c in context.catalog.list_categories() if c.name == "编程开发")

        result = context.importer.import_resource(staged_resources[0].id)

        assert context.catalog.get_resource(result.catalog_resource_id).category_id == wanted.id

    def test_batch_import_survives_failing_item(self, context, category, staged_resources, monkeypatch):
        """Test that a failing item does not stop the rest of the batch."""
        original = context.importer.import_resource
        failing_id = staged_resources[0].id

        def flaky(resource_id, outline=None):
            if resource_id == failing_id:
                raise RuntimeError("catalog write failed")
            return original(resource_id, outline=outline)

        monkeypatch.setattr(context.importer, "import_resource", flaky)

        result = context.importer.batch_import(category.id)

        assert (result.total, result.succeeded, result.failed) == (2, 1, 1)
        assert failing_id in result.failures
        assert context.staging.get_resource(staged_resources[1].id).linked_resource_id
        assert context.staging.get_resource(failing_id).linked_resource_id is None

    def test_batch_import_skips_linked(self, context, category, staged_resources):
        """Test that already imported rows are skipped, not duplicated."""
        context.importer.import_resource(staged_resources[0].id)

        result = context.importer.batch_import(category.id)

        assert (result.succeeded, result.skipped) == (1, 1)
        assert len(context.catalog.list_resources()) == 2

    def test_import_categories(self, context, category):
        """Test copying valid staging categories into the catalog."""
        hidden, _ = context.staging.upsert_category("隐藏", f"{CATEGORY_URL}/hidden")
        context.staging.set_category_invalid(hidden.id)

        first = context.importer.import_categories()
        second = context.importer.import_categories()

        assert (first.created, first.updated) == (1, 0)
        assert (second.created, second.updated) == (0, 1)
        assert [c.name for c in context.catalog.list_categories()] == ["编程开发"]

    def test_fix_catalog_descriptions(self, context):
        """Test repair of fenced HTML descriptions only."""
        broken = context.catalog.create_resource(
            {"title": "a", "description": "```markdown\n<p>你好</p>\n```"}
        )
        context.catalog.create_resource(
            {"title": "b", "description": "```markdown\n# 已是 Markdown\n```"}
        )

        assert context.importer.fix_catalog_descriptions() == 1
        assert context.catalog.get_resource(broken.id).description == "你好"


# ─────────────────────────────────────────────────────────────────────────────
# Job Runner Tests
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.integration
class TestJobRunner:
    """Tests for the JobRunner class."""

    def test_batch_import_job_completes(self, context, category, staged_resources):
        """Test a batch import job end to end."""
        job = context.runner.submit_batch_import(category.id)
        result = context.runner.run(job.id)

        stored = context.jobs.get(job.id)
        assert result.succeeded == 2
        assert stored.status == "completed"
        assert (stored.total, stored.processed, stored.succeeded) == (2, 2, 2)
        assert stored.finished_at is not None

    def test_parse_job_completes(self, context, category):
        """Test a parse job over one category."""
        job = context.runner.submit_parse_resources(category.id)
        context.runner.run(job.id)

        stored = context.jobs.get(job.id)
        assert stored.status == "completed"
        assert (stored.total, stored.succeeded) == (2, 2)

    def test_cancelled_job(self, context, category, staged_resources):
        """Test that a cancel request stops the job before its next item."""
        job = context.runner.submit_batch_import(category.id)
        context.runner.cancel(job.id)

        result = context.runner.run(job.id)

        stored = context.jobs.get(job.id)
        assert result.cancelled is True
        assert stored.status == "cancelled"
        assert stored.processed == 0

    def test_failed_job_records_error(self, context, fake_fetcher, category):
        """Test that a job whose category cannot be crawled is failed."""
        fake_fetcher.pages.pop(CATEGORY_URL)

        job = context.runner.submit_parse_resources(category.id)
        assert context.runner.run(job.id) is None

        stored = context.jobs.get(job.id)
        assert stored.status == "failed"
        assert "404" in stored.error

    def test_overlapping_submit_refused(self, context, category):
        """Test that a second job for the same category is refused."""
        from ziyuanbao.shared.errors import JobConflictError

        context.runner.submit_batch_import(category.id)

        with pytest.raises(JobConflictError):
            context.runner.submit_batch_import(category.id)

    def test_unknown_category(self, context):
        """Test that jobs are not created for missing categories."""
        from ziyuanbao.shared.errors import NotFoundError

        with pytest.raises(NotFoundError):
            context.runner.submit_batch_import(999)

    def test_finished_job_not_rerun(self, context, category, staged_resources):
        """Test that run() ignores jobs that are no longer pending."""
        job = context.runner.submit_batch_import(category.id)
        context.runner.run(job.id)

        assert context.runner.run(job.id) is None
