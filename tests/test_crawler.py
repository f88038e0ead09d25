import asyncio

import pytest
import requests

from sentinel.models.monitoring import CrawlResult
from sentinel.services.crawler import FeedCrawler, ScriptedCrawler, create_crawler
from sentinel.services.registration import AssetRegistry

from conftest import make_target, png_bytes, random_image

FEED = "https://feeds.example"


class FakeResponse:
    def __init__(self, status_code=200, content=b"", payload=None):
        self.status_code = status_code
        self.content = content
        self._payload = payload

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    def __init__(self, routes):
        self.routes = routes
        self.requested = []

    def get(self, url, timeout=None):
        self.requested.append(url)
        return self.routes.get(url, FakeResponse(status_code=404))


@pytest.fixture
def asset(stores):
    registry = AssetRegistry(stores.vault)
    return registry.register_pixels(random_image(21), "protected.png").asset


def test_feed_crawler_reports_best_candidate(asset):
    original = random_image(21)
    other = random_image(22)
    session = FakeSession({
        f"{FEED}/target_1": FakeResponse(payload={"candidates": [
            "https://cdn.example/other.png",
            "https://cdn.example/missing.png",
            "https://cdn.example/garbage.png",
            "https://cdn.example/copy.png",
        ]}),
        "https://cdn.example/other.png": FakeResponse(content=png_bytes(other)),
        "https://cdn.example/garbage.png": FakeResponse(content=b"<html>"),
        "https://cdn.example/copy.png": FakeResponse(content=png_bytes(original)),
    })
    crawler = FeedCrawler(feed_url=FEED + "/", session=session)

    result = asyncio.run(crawler.crawl(make_target(1), asset))

    assert result.found is True
    assert result.similarity == 100
    assert result.url == "https://cdn.example/copy.png"
    assert session.requested[0] == f"{FEED}/target_1"


def test_feed_crawler_without_candidates(asset):
    session = FakeSession({f"{FEED}/target_1": FakeResponse(payload=[])})
    result = asyncio.run(FeedCrawler(feed_url=FEED, session=session).crawl(make_target(1), asset))
    assert result == CrawlResult(found=False)


def test_feed_crawler_limits_candidates(asset):
    urls = [f"https://cdn.example/{i}.png" for i in range(10)]
    session = FakeSession({f"{FEED}/target_1": FakeResponse(payload=urls)})
    crawler = FeedCrawler(feed_url=FEED, session=session, max_candidates=3)

    asyncio.run(crawler.crawl(make_target(1), asset))

    assert session.requested == [f"{FEED}/target_1"] + urls[:3]


def test_feed_failure_propagates(asset):
    session = FakeSession({f"{FEED}/target_1": FakeResponse(status_code=503)})
    with pytest.raises(requests.HTTPError):
        asyncio.run(FeedCrawler(feed_url=FEED, session=session).crawl(make_target(1), asset))


def test_scripted_crawler(asset):
    expected = CrawlResult(found=True, similarity=80, url="https://x.example")
    crawler = ScriptedCrawler(results={("target_1", asset.id): expected},
                              errors={("target_2", asset.id): TimeoutError("slow")})

    assert asyncio.run(crawler.crawl(make_target(1), asset)) == expected
    assert asyncio.run(crawler.crawl(make_target(3), asset)).found is False
    with pytest.raises(TimeoutError):
        asyncio.run(crawler.crawl(make_target(2), asset))
    assert len(crawler.calls) == 3


def test_create_crawler_backends():
    assert isinstance(create_crawler("none"), ScriptedCrawler)
    with pytest.raises(ValueError):
        create_crawler("headless")
