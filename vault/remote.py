"""
Remote byte fetches for objects stored behind a URL (CDN, object storage).

Retries, timeout and TLS verification belong to the fetcher; callers see a
single FetchFailed when the budget is exhausted.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from encrypted_uploads.errors import FetchFailed
from encrypted_uploads.metrics import Metrics
from encrypted_uploads.models import ObjectRecord
from vault.store import ObjectStore

logger = logging.getLogger(__name__)


class HttpFetcher:
    """GET a URL and return the body, or raise FetchFailed."""

    def __init__(
        self,
        *,
        timeout: float = 3.0,
        retries: int = 2,
        verify_tls: bool = True,
        session: Optional[requests.Session] = None,
        metrics: Optional[Metrics] = None,
    ):
        self.timeout = timeout
        self.verify_tls = verify_tls
        self.metrics = metrics or Metrics()
        if session is None:
            session = requests.Session()
            retry = Retry(
                total=retries,
                backoff_factor=0.2,
                status_forcelist=(502, 503, 504),
                allowed_methods=("GET",),
            )
            adapter = HTTPAdapter(max_retries=retry)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self.session = session

    def fetch(self, url: str) -> bytes:
        t0 = time.perf_counter()
        try:
            resp = self.session.get(url, timeout=self.timeout, verify=self.verify_tls)
        except requests.RequestException as e:
            self.metrics.inc("fetch_errors_total")
            logger.warning(f"Remote fetch failed: {type(e).__name__}")
            raise FetchFailed("Transport error while fetching object") from e
        self.metrics.observe("fetch_latency_ms", (time.perf_counter() - t0) * 1000.0)
        if resp.status_code != 200:
            self.metrics.inc("fetch_errors_total")
            logger.warning(f"Remote fetch returned HTTP {resp.status_code}")
            raise FetchFailed(f"Remote store answered HTTP {resp.status_code}")
        return resp.content


class RemoteObjectStore:
    """Bytes from each record's URL; records without one are read from ``records``."""

    def __init__(self, records: ObjectStore, fetcher: HttpFetcher):
        self.records = records
        self.fetcher = fetcher

    def get_record(self, object_id: int) -> ObjectRecord:
        return self.records.get_record(object_id)

    def read_bytes(self, record: ObjectRecord) -> bytes:
        if record.url:
            return self.fetcher.fetch(record.url)
        return self.records.read_bytes(record)
