from __future__ import annotations

import httpx
import pytest

from answer_engine.models.hits import WebHit
from answer_engine.tools import page_fetcher
from answer_engine.tools.content_extractor import ExtractedContent, extract_main_content

ARTICLE = "Paris is the capital and most populous city of France. " * 10


def _fake_extract(url, raw_html):
    text = "" if "empty" in raw_html else ARTICLE
    return ExtractedContent(
        url=url, title="Paris", text=text, author="Jane Doe", method="trafilatura", fallback_used=False
    )


@pytest.fixture(autouse=True)
def _stub_extractor(monkeypatch):
    monkeypatch.setattr(page_fetcher, "extract_main_content", _fake_extract)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _html(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/missing":
        return httpx.Response(404, text="not found")
    if request.url.path == "/file.pdf":
        return httpx.Response(200, content=b"%PDF", headers={"content-type": "application/pdf"})
    if request.url.path == "/empty":
        return httpx.Response(200, text="<html>empty</html>", headers={"content-type": "text/html"})
    if request.url.path == "/down":
        raise httpx.ConnectError("connection refused", request=request)
    return httpx.Response(200, text="<html><body>ok</body></html>", headers={"content-type": "text/html; charset=utf-8"})


@pytest.mark.asyncio
async def test_fetch_page_returns_extracted_page_and_sends_browser_headers():
    seen: list[httpx.Request] = []

    def handler(request):
        seen.append(request)
        return _html(request)

    async with _client(handler) as client:
        page = await page_fetcher.fetch_page("https://example.com/paris", client=client)

    assert page.title == "Paris"
    assert page.author == "Jane Doe"
    assert page.text == ARTICLE
    assert "Mozilla/5.0" in seen[0].headers["user-agent"]


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/missing", "/file.pdf", "/empty", "/down"])
async def test_fetch_page_failures_return_none(path):
    async with _client(_html) as client:
        assert await page_fetcher.fetch_page(f"https://example.com{path}", client=client) is None


@pytest.mark.asyncio
async def test_fetch_page_rejects_invalid_url_without_request():
    def handler(request):
        raise AssertionError("no request expected")

    async with _client(handler) as client:
        assert await page_fetcher.fetch_page("ftp://example.com/x", client=client) is None


@pytest.mark.asyncio
async def test_fetch_page_uses_cache_on_second_call():
    calls: list[str] = []

    def handler(request):
        calls.append(str(request.url))
        return _html(request)

    async with _client(handler) as client:
        first = await page_fetcher.fetch_page("https://example.com/paris", client=client)
        second = await page_fetcher.fetch_page("https://EXAMPLE.com/paris#section", client=client)

    assert len(calls) == 1
    assert second == first


@pytest.mark.asyncio
async def test_fetch_pages_dedupes_limits_and_drops_failures():
    hits = [
        WebHit(title="a", url="https://example.com/a"),
        WebHit(title="a dup", url="https://example.com/a#x"),
        WebHit(title="missing", url="https://example.com/missing"),
        WebHit(title="b", url="https://example.com/b"),
        WebHit(title="c", url="https://example.com/c"),
    ]

    async with _client(_html) as client:
        pairs = await page_fetcher.fetch_pages(hits, limit=3, client=client)

    assert [hit.title for hit, _ in pairs] == ["a", "b"]


def test_extract_main_content_reads_meta_and_visible_text():
    html = (
        "<html><head><title>Paris guide</title><meta name='author' content='Jane Doe'></head>"
        "<body><nav>Menu</nav><article><p>Paris is the capital of France.</p></article>"
        "<script>var x = 1;</script></body></html>"
    )

    extracted = extract_main_content("https://example.com/guide", html)

    assert extracted.title == "Paris guide"
    assert extracted.author == "Jane Doe"
    assert "Paris is the capital of France." in extracted.text
    assert "var x" not in extracted.text


def test_extract_main_content_truncates_to_max_chars():
    html = "<html><body><p>" + "word " * 500 + "</p></body></html>"

    extracted = extract_main_content("https://example.com/long", html, max_chars=50)

    assert len(extracted.text) <= 50
