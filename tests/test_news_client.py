import pytest
import requests

from newsreader.article_fetcher import ArticleFetcher, ArticleFetchError
from newsreader.models import Article
from newsreader.news_client import NewsClient, build_query, slugify_outlet


class FakeResponse:
    def __init__(self, payload=None, status_code=200, text=""):
        self._payload = payload
        self.status_code = status_code
        self.text = text

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response


# ============================================================================
# QUERY BUILDING
# ============================================================================

@pytest.mark.parametrize(
    "name, slug",
    [("BBC News", "bbc-news"), ("  The  Verge ", "the-verge"), ("reuters", "reuters"), ("", ""), (None, "")],
)
def test_slugify_outlet(name, slug):
    assert slugify_outlet(name) == slug


def test_build_query_omits_empty_values():
    assert build_query("climate", "") == {"q": "climate"}
    assert build_query("", "BBC News") == {"source": "bbc-news"}
    assert build_query("", "") == {}
    assert build_query("climate", "CNN") == {"source": "cnn", "q": "climate"}


# ============================================================================
# SEARCH
# ============================================================================

async def test_search_parses_articles_and_drops_removed():
    payload = {
        "status": "ok",
        "articles": [
            {"title": "Storm hits coast", "url": "https://a.example/1", "source": {"id": None, "name": "AP"}},
            {"title": "[Removed]", "url": "https://removed.com", "source": {"name": "[Removed]"}},
            {"title": "No link", "url": None, "source": {"name": "AP"}},
            {"title": "Rates held", "url": "https://b.example/2", "sourceName": "Reuters", "description": "Fed"},
        ],
    }
    session = FakeSession(FakeResponse(payload))
    client = NewsClient("http://gateway.local/", session=session)

    articles = await client.search("climate", "")

    assert articles == [
        Article(title="Storm hits coast", source_name="AP", url="https://a.example/1"),
        Article(title="Rates held", source_name="Reuters", url="https://b.example/2", description="Fed"),
    ]
    url, kwargs = session.calls[0]
    assert url == "http://gateway.local/news"
    assert kwargs["params"] == {"q": "climate"}


@pytest.mark.parametrize(
    "session",
    [
        FakeSession(error=requests.exceptions.ConnectionError("down")),
        FakeSession(FakeResponse(status_code=500)),
        FakeSession(FakeResponse(payload=None)),
        FakeSession(FakeResponse({"status": "error"})),
    ],
)
async def test_search_failures_resolve_to_empty(session):
    assert await NewsClient("http://gateway.local", session=session).search("x", "y") == []


# ============================================================================
# ARTICLE FETCH
# ============================================================================

def test_fetch_returns_html_with_user_agent():
    session = FakeSession(FakeResponse(text="<html></html>"))
    fetcher = ArticleFetcher(user_agent="test-agent", session=session)
    assert fetcher.fetch("https://a.example/1") == "<html></html>"
    assert session.calls[0][1]["headers"] == {"User-Agent": "test-agent"}


@pytest.mark.parametrize(
    "session",
    [
        FakeSession(error=requests.exceptions.Timeout("slow")),
        FakeSession(FakeResponse(status_code=404)),
        FakeSession(FakeResponse(text="")),
    ],
)
async def test_fetch_errors(session):
    with pytest.raises(ArticleFetchError):
        await ArticleFetcher(session=session).fetch_async("https://a.example/1")


def test_default_session_retries_transient_errors():
    adapter = ArticleFetcher(retries=2, backoff_factor=0.1).session.get_adapter("https://a.example")
    assert adapter.max_retries.total == 2
    assert 503 in adapter.max_retries.status_forcelist
