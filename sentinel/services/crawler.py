"""
Crawler port used by the monitoring scan, plus a scripted double and a
feed-based adapter that hashes candidate images published by a target.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

import requests
import structlog
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from sentinel import config
from sentinel.core.exceptions import ImageDecodeError
from sentinel.models.fingerprint import HashAlgorithm, ProtectedAsset
from sentinel.models.monitoring import CrawlResult, MonitoringTarget
from sentinel.services.image_hash import compute_hash, load_pixels
from sentinel.services.similarity import MatchPolicy

logger = structlog.get_logger()

PairKey = Tuple[str, str]  # (target_id, asset_id)


class Crawler(ABC):
    """Checks one monitoring target for copies of one protected asset."""

    @abstractmethod
    async def crawl(self, target: MonitoringTarget, asset: ProtectedAsset) -> CrawlResult:
        pass


class ScriptedCrawler(Crawler):
    """
    Deterministic crawler returning preset results per (target, asset) pair.
    Pairs without a preset result report no match.
    """

    def __init__(self,
                 results: Optional[Dict[PairKey, CrawlResult]] = None,
                 errors: Optional[Dict[PairKey, Exception]] = None):
        self.results = dict(results or {})
        self.errors = dict(errors or {})
        self.calls: List[PairKey] = []

    async def crawl(self, target: MonitoringTarget, asset: ProtectedAsset) -> CrawlResult:
        key = (target.id, asset.id)
        self.calls.append(key)
        if key in self.errors:
            raise self.errors[key]
        return self.results.get(key, CrawlResult(found=False))


class FeedCrawler(Crawler):
    """
    Fetches the candidate image URLs a target feed publishes, hashes each
    candidate and reports the closest one within the match threshold.

    The feed at ``{feed_url}/{target_id}`` returns either a JSON list of
    image URLs or an object with a ``candidates`` list.
    """

    def __init__(self,
                 feed_url: str = config.CRAWLER_FEED_URL,
                 policy: Optional[MatchPolicy] = None,
                 algorithm: HashAlgorithm = HashAlgorithm.PHASH,
                 timeout: float = config.CRAWLER_TIMEOUT,
                 max_candidates: int = config.CRAWLER_MAX_CANDIDATES,
                 session: Optional[requests.Session] = None):
        self.feed_url = feed_url.rstrip("/")
        self.policy = policy or MatchPolicy()
        self.algorithm = HashAlgorithm(algorithm)
        self.timeout = timeout
        self.max_candidates = max_candidates
        self.session = session or self._build_session()

        logger.info("Feed crawler initialized",
                    feed_url=self.feed_url,
                    algorithm=self.algorithm.value,
                    max_candidates=max_candidates)

    @staticmethod
    def _build_session() -> requests.Session:
        """HTTP session with retry logic for transient feed failures."""
        session = requests.Session()
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def fetch_candidates(self, target: MonitoringTarget) -> List[str]:
        resp = self.session.get(f"{self.feed_url}/{target.id}", timeout=self.timeout)
        resp.raise_for_status()
        payload = resp.json()
        candidates = payload.get("candidates", []) if isinstance(payload, dict) else payload
        return [url for url in candidates if isinstance(url, str)][:self.max_candidates]

    def _crawl_sync(self, target: MonitoringTarget, asset: ProtectedAsset) -> CrawlResult:
        candidates = self.fetch_candidates(target)
        reference = asset.hashes.get(self.algorithm)

        best_similarity, best_url = None, None
        for url in candidates:
            try:
                resp = self.session.get(url, timeout=self.timeout)
                resp.raise_for_status()
                candidate_hash = compute_hash(load_pixels(resp.content), self.algorithm)
            except (requests.RequestException, ImageDecodeError) as e:
                logger.warning("Skipping candidate", target=target.name, url=url, error=str(e))
                continue

            comparison = self.policy.compare(reference, candidate_hash)
            if comparison.is_match and (best_similarity is None or comparison.similarity > best_similarity):
                best_similarity, best_url = comparison.similarity, url

        logger.debug("Target crawled",
                     target=target.name,
                     asset_id=asset.id,
                     candidates=len(candidates),
                     best_similarity=best_similarity)

        if best_url is None:
            return CrawlResult(found=False)
        return CrawlResult(found=True, similarity=best_similarity, url=best_url)

    async def crawl(self, target: MonitoringTarget, asset: ProtectedAsset) -> CrawlResult:
        return await asyncio.to_thread(self._crawl_sync, target, asset)


def create_crawler(backend: str = config.CRAWLER_BACKEND) -> Crawler:
    """Build the crawler for the configured backend."""
    if backend == "feed":
        return FeedCrawler()
    if backend == "none":
        return ScriptedCrawler()
    raise ValueError(f"Unknown crawler backend: {backend}")
