"""
Pytest Configuration and Fixtures.
==================================

Shared fixtures for all test modules: settings without politeness delays,
a fake fetcher serving canned pages, a fake Gemini client, and a fully
wired pipeline context over a temporary SQLite database.
"""

import json
from typing import Optional
from unittest.mock import MagicMock

import pytest

BASE_URL = "https://www.feifeiziyuan.com"
CATEGORY_URL = f"{BASE_URL}/category/dev"
PYTHON_URL = f"{BASE_URL}/course/python-101"
REACT_URL = f"{BASE_URL}/course/react"


# ─────────────────────────────────────────────────────────────────────────────
# Fakes
# ─────────────────────────────────────────────────────────────────────────────


class FakeFetcher:
    """Serves canned HTML by URL; unknown URLs behave like a 404."""

    def __init__(self, pages: Optional[dict] = None):
        self.pages = dict(pages or {})
        self.requested: list[str] = []
        self.closed = False

    def fetch(self, url: str, allow_not_found: bool = False):
        from ziyuanbao.ingestion.fetcher import FetchedPage
        from ziyuanbao.shared.errors import FetchError

        self.requested.append(url)
        html = self.pages.get(url)
        if isinstance(html, Exception):
            raise html
        if html is None:
            if allow_not_found:
                return FetchedPage(url=url, html="", status_code=404)
            raise FetchError(url, "HTTP 404", status_code=404)
        return FetchedPage(url=url, html=html, status_code=200)

    def close(self) -> None:
        self.closed = True


# ─────────────────────────────────────────────────────────────────────────────
# Sample Pages
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def sample_nav_html() -> str:
    """Home page with a two-level navigation menu."""
    return """
    <html><body>
    <ul class="menu">
      <li class="menu-item"><a href="/">首页</a></li>
      <li class="menu-item menu-item-has-children">
        <a href="/category/design">设计</a>
        <ul class="sub-menu">
          <li><a href="/category/design/graphic">平面设计</a></li>
          <li><a href="/category/design/ui">UI设计</a></li>
        </ul>
      </li>
    </ul>
    </body></html>
    """


@pytest.fixture
def sample_listing_html() -> str:
    """Category listing page with two resources and a category link."""
    return """
    <html><body>
    <section class="container">
      <a href="/category/dev">编程开发</a>
      <a href="/course/python-101" title="[Udemy] Python 入门 | Python Basics [中字]">
        <img src="/thumb.jpg">
      </a>
      <a href="https://www.feifeiziyuan.com/course/react">React 实战</a>
    </section>
    </body></html>
    """


@pytest.fixture
def sample_course_html() -> str:
    """Course-content block with one section container."""
    return (
        '<div class="section"><h4>第一章 入门</h4><ul>'
        '<li class="lecture preview">简介 05:00</li>'
        "<li>安装 10:30</li>"
        "</ul></div>"
    )


@pytest.fixture
def sample_detail_html(sample_course_html: str) -> str:
    """Resource detail page carrying every extracted field."""
    return f"""
    <html>
    <head><meta property="og:image" content="https://img.example.com/cover.jpg"></head>
    <body>
    <div class="entry-tags"><a href="/tag/python">Python</a><a href="/tag/web">Web</a></div>
    <ul class="article-meta">
      <li>资源分类：<a href="/category/dev">编程开发</a></li>
      <li>浏览热度：(1024)</li>
      <li>发布时间：2024-01-02</li>
      <li>视频大小：3.2GB</li>
      <li>课时：12小时</li>
      <li>视频语言：英语</li>
      <li>视频字幕：中英字幕</li>
    </ul>
    <div class="prices-info"><div class="price-item no">38金币</div></div>
    <a class="btn" href="https://preview.example.com/v/1">查看预览</a>
    <article class="post-content">
      <div class="lwptoc">目录</div>
      <div class="entry-content">
        <p>课程简介：从零学习 <strong>Python</strong></p>
        <div class="course-content">{sample_course_html}</div>
      </div>
      <p>本站所有文章均为原创发布</p>
    </article>
    </body>
    </html>
    """


@pytest.fixture
def outline_json_english() -> str:
    return json.dumps(
        {
            "chapters": [
                {
                    "title": "第一章 入门",
                    "duration": "15 分钟",
                    "lectures": [
                        {"title": "简介", "duration": "05:00", "preview": True},
                        {"title": "安装", "duration": "10:00", "preview": False},
                    ],
                }
            ]
        },
        ensure_ascii=False,
    )


@pytest.fixture
def outline_json_chinese() -> str:
    return json.dumps(
        {
            "章节": [
                {
                    "标题": "第一章 入门",
                    "时长": "15 分钟",
                    "讲座": [
                        {"标题": "简介", "时长": "05:00", "预览": True},
                        {"标题": "安装", "时长": "10:00", "预览": False},
                    ],
                }
            ]
        },
        ensure_ascii=False,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Settings / Clients
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def settings():
    """Settings with every politeness delay and retry disabled."""
    from ziyuanbao.shared.config import Settings

    return Settings(
        GEMINI_API_KEY="test-key",
        scraping={"base_url": BASE_URL, "rate_limit": 0, "max_pages": 5},
        pipeline={"item_delay": 0, "category_delay": 0},
        generation={"max_retries": 1},
    )


@pytest.fixture
def fake_fetcher(sample_nav_html, sample_listing_html, sample_detail_html) -> FakeFetcher:
    return FakeFetcher(
        {
            BASE_URL: sample_nav_html,
            CATEGORY_URL: sample_listing_html,
            PYTHON_URL: sample_detail_html,
            REACT_URL: sample_detail_html,
        }
    )


@pytest.fixture
def fake_genai_client(outline_json_chinese: str) -> MagicMock:
    """Gemini client stand-in replying with a fenced Chinese-key outline."""
    client = MagicMock()
    client.models.generate_content.return_value.text = f"```json\n{outline_json_chinese}\n```"
    return client


# ─────────────────────────────────────────────────────────────────────────────
# Pipeline Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def context(settings, fake_fetcher, fake_genai_client, tmp_path):
    """Wired pipeline over a fresh SQLite file."""
    from ziyuanbao.outline.ai import OutlineGenerator
    from ziyuanbao.pipeline.context import build_context

    generator = OutlineGenerator(settings=settings, client=fake_genai_client)
    ctx = build_context(
        settings,
        database_url=f"sqlite:///{tmp_path / 'ziyuanbao-test.db'}",
        fetcher=fake_fetcher,
        generator=generator,
    )
    yield ctx
    ctx.close()


@pytest.fixture
def category(context):
    """A staging category pointing at the canned listing page."""
    created, _ = context.staging.upsert_category("编程开发", CATEGORY_URL)
    return created


@pytest.fixture
def staged_resources(context, category):
    """Two staged resources from the canned listing page."""
    from ziyuanbao.shared.schemas import ResourceLink

    context.staging.upsert_resource_links(
        category.id,
        [
            ResourceLink(
                chinese_title="Python 入门",
                english_title="Python Basics",
                url=PYTHON_URL,
                tags=["udemy"],
            ),
            ResourceLink(chinese_title="React 实战", url=REACT_URL),
        ],
    )
    ids = context.staging.list_resource_ids(category.id)
    return [context.staging.get_resource(resource_id) for resource_id in ids]


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests that wire several components together"
    )
