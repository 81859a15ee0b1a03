"""
Routes Module - Admin endpoints for the import pipeline.
=======================================================

Handlers are synchronous (FastAPI runs them in its threadpool). Batch
operations create a job record, answer 202 with it, and run in a
background task; poll /jobs/{id} for progress.
"""

from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from pydantic import BaseModel, Field

from ziyuanbao import __version__
from ziyuanbao.pipeline.context import PipelineContext
from ziyuanbao.shared.logging import get_logger
from ziyuanbao.shared.schemas import (
    CatalogResourceOut,
    CategoryImportResult,
    CategoryOut,
    CategoryParseResult,
    CourseOutline,
    DiscoveryResult,
    ImportResult,
    JobOut,
    OutlineMode,
    StagedResourceDetailOut,
    StagedResourceOut,
)

logger = get_logger(__name__)

router = APIRouter()


def get_context(request: Request) -> PipelineContext:
    return request.app.state.context


# ========================================================================
# Request Models
# ========================================================================


class CategoryCreate(BaseModel):
    title: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    sort_order: Optional[int] = None


class CategoryUpdate(BaseModel):
    title: Optional[str] = None
    url: Optional[str] = None
    sort_order: Optional[int] = None
    is_invalid: Optional[bool] = None


class InvalidateRequest(BaseModel):
    is_invalid: bool = True


class DiscoverRequest(BaseModel):
    url: Optional[str] = None


class ParseAllRequest(BaseModel):
    category_id: Optional[int] = None


class ResourceUpdate(BaseModel):
    chinese_title: Optional[str] = None
    english_title: Optional[str] = None
    details_html: Optional[str] = None
    page_html: Optional[str] = None
    course_html: Optional[str] = None
    parsed_content: Optional[str] = None
    markdown_content: Optional[str] = None
    coin_price: Optional[str] = None


class CloudDiskRequest(BaseModel):
    text: str


class OutlineRequest(BaseModel):
    mode: OutlineMode = OutlineMode.HEURISTIC
    save: bool = True


class ToResourceRequest(BaseModel):
    parsed_content: Optional[str] = Field(
        default=None, description="Freshly computed outline JSON to import with"
    )


def _page(items: list[Any], total: int, page: int, page_size: int) -> dict[str, Any]:
    return {"items": items, "total": total, "page": page, "page_size": page_size}


# ========================================================================
# Health
# ========================================================================


@router.get("/health")
def health():
    return {"status": "ok", "version": __version__}


# ========================================================================
# Categories
# ========================================================================


@router.get("/feifei-categories")
def list_categories(
    invalid: Optional[bool] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(1000, ge=1, le=1000),
    ctx: PipelineContext = Depends(get_context),
):
    """List staging categories, optionally filtered on the invalid flag."""
    categories, total = ctx.staging.list_categories(invalid=invalid, page=page, page_size=page_size)
    items = [CategoryOut.model_validate(category) for category in categories]
    return _page(items, total, page, page_size)


@router.post("/feifei-categories", status_code=201, response_model=CategoryOut)
def create_category(body: CategoryCreate, ctx: PipelineContext = Depends(get_context)):
    category, _ = ctx.staging.upsert_category(body.title, body.url, body.sort_order)
    return category


@router.get("/feifei-categories/{category_id}", response_model=CategoryOut)
def get_category(category_id: int, ctx: PipelineContext = Depends(get_context)):
    return ctx.staging.get_category(category_id)


@router.patch("/feifei-categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int, body: CategoryUpdate, ctx: PipelineContext = Depends(get_context)
):
    return ctx.staging.update_category(category_id, **body.model_dump(exclude_none=True))


@router.patch("/feifei-categories/{category_id}/invalidate", response_model=CategoryOut)
def invalidate_category(
    category_id: int,
    body: Optional[InvalidateRequest] = None,
    ctx: PipelineContext = Depends(get_context),
):
    """Soft-exclude a category from bulk operations (is_invalid=false re-includes it)."""
    is_invalid = body.is_invalid if body is not None else True
    return ctx.staging.set_category_invalid(category_id, is_invalid)


@router.delete("/feifei-categories/{category_id}", status_code=204)
def delete_category(category_id: int, ctx: PipelineContext = Depends(get_context)):
    ctx.staging.delete_category(category_id)


@router.post("/parse-feifei-website", response_model=DiscoveryResult)
def parse_website(
    body: Optional[DiscoverRequest] = None, ctx: PipelineContext = Depends(get_context)
):
    """Discover category listing URLs from the source site's navigation."""
    return ctx.service.discover_categories(body.url if body else None)


@router.post("/feifei-categories/{category_id}/parse", response_model=CategoryParseResult)
def parse_category(category_id: int, ctx: PipelineContext = Depends(get_context)):
    """Crawl one category listing and upsert its resources."""
    return ctx.service.parse_category(category_id)


@router.get("/feifei-categories/{category_id}/resources")
def list_category_resources(
    category_id: int,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    ctx: PipelineContext = Depends(get_context),
):
    """Paged staged resources of a category, tags included."""
    api_config = ctx.settings.api
    page_size = min(page_size or api_config.default_page_size, api_config.max_page_size)
    resources, total = ctx.staging.list_resources(category_id, page=page, page_size=page_size)
    items = [StagedResourceOut.model_validate(resource) for resource in resources]
    return _page(items, total, page, page_size)


# ========================================================================
# Resources
# ========================================================================


@router.get("/feifei-resources/{resource_id}", response_model=StagedResourceDetailOut)
def get_resource(resource_id: int, ctx: PipelineContext = Depends(get_context)):
    return ctx.staging.get_resource(resource_id)


@router.patch("/feifei-resources/{resource_id}", response_model=StagedResourceDetailOut)
def update_resource(
    resource_id: int, body: ResourceUpdate, ctx: PipelineContext = Depends(get_context)
):
    """Save hand-edited fields (raw HTML, outline JSON in either key language)."""
    return ctx.staging.update_resource(resource_id, **body.model_dump(exclude_none=True))


@router.patch("/feifei-resources/{resource_id}/cloud-disk", response_model=StagedResourceOut)
def save_cloud_disk(
    resource_id: int, body: CloudDiskRequest, ctx: PipelineContext = Depends(get_context)
):
    """Extract a share link and code from pasted text and store them."""
    return ctx.service.save_cloud_disk_text(resource_id, body.text)


@router.post("/feifei-resources/{resource_id}/fetch-and-parse", response_model=StagedResourceOut)
def fetch_and_parse(resource_id: int, ctx: PipelineContext = Depends(get_context)):
    """Re-fetch the detail page and overwrite the extracted fields."""
    return ctx.service.fetch_and_parse_resource(resource_id)


@router.post("/feifei-resources/{resource_id}/extract-outline")
def extract_outline(
    resource_id: int,
    body: Optional[OutlineRequest] = None,
    ctx: PipelineContext = Depends(get_context),
):
    """
    Compute the course outline from stored course content.

    On failure the stored outline is left as it was.
    """
    body = body or OutlineRequest()
    if body.save:
        outline = ctx.service.extract_outline(resource_id, body.mode)
    else:
        outline = ctx.service.compute_outline(resource_id, body.mode)
    return {
        "resource_id": resource_id,
        "mode": body.mode.value,
        "saved": body.save,
        "outline": outline.model_dump(),
        "summary": outline.summary().model_dump(),
    }


@router.post("/feifei-resources/{resource_id}/to-resource", response_model=ImportResult)
def import_resource(
    resource_id: int,
    body: Optional[ToResourceRequest] = None,
    ctx: PipelineContext = Depends(get_context),
):
    """Promote one staged resource into the catalog (skipped if already linked)."""
    outline = None
    if body is not None and body.parsed_content:
        outline = CourseOutline.from_json(body.parsed_content)
    return ctx.importer.import_resource(resource_id, outline=outline)


@router.get("/catalog-resources/{resource_id}", response_model=CatalogResourceOut)
def get_catalog_resource(resource_id: int, ctx: PipelineContext = Depends(get_context)):
    return ctx.catalog.get_resource(resource_id)


# ========================================================================
# Batch Operations
# ========================================================================


@router.post("/parse-all-feifei-resources", status_code=202, response_model=JobOut)
def parse_all_resources(
    background_tasks: BackgroundTasks,
    body: Optional[ParseAllRequest] = None,
    ctx: PipelineContext = Depends(get_context),
):
    """Start a job crawling one category (or all valid ones) and parsing every detail page."""
    job = ctx.runner.submit_parse_resources(body.category_id if body else None)
    background_tasks.add_task(ctx.runner.run, job.id)
    return job


@router.post(
    "/feifei-categories/{category_id}/batch-add-to-resources",
    status_code=202,
    response_model=JobOut,
)
def batch_import(
    category_id: int,
    background_tasks: BackgroundTasks,
    ctx: PipelineContext = Depends(get_context),
):
    """Start a job importing every unlinked staged resource of a category."""
    job = ctx.runner.submit_batch_import(category_id)
    background_tasks.add_task(ctx.runner.run, job.id)
    return job


@router.post("/import-feifei-categories", response_model=CategoryImportResult)
def import_categories(ctx: PipelineContext = Depends(get_context)):
    return ctx.importer.import_categories()


@router.post("/fix-markdown")
def fix_markdown(ctx: PipelineContext = Depends(get_context)):
    """Repair catalog descriptions holding HTML inside a ```markdown fence."""
    return {"fixed": ctx.importer.fix_catalog_descriptions()}


# ========================================================================
# Jobs
# ========================================================================


@router.get("/jobs", response_model=list[JobOut])
def list_jobs(
    active_only: bool = False,
    limit: int = Query(50, ge=1, le=500),
    ctx: PipelineContext = Depends(get_context),
):
    return ctx.jobs.list_jobs(limit=limit, active_only=active_only)


@router.get("/jobs/{job_id}", response_model=JobOut)
def get_job(job_id: int, ctx: PipelineContext = Depends(get_context)):
    return ctx.jobs.get(job_id)


@router.post("/jobs/{job_id}/cancel", response_model=JobOut)
def cancel_job(job_id: int, ctx: PipelineContext = Depends(get_context)):
    """Request cancellation; the job stops before its next item."""
    return ctx.runner.cancel(job_id)
