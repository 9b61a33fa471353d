from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Sequence

from vsight.config import AppConfig
from vsight.errors import ProviderNotConfigured, UpstreamError
from vsight.geo import normalize_region
from vsight.models import RankResult, RankRow, Region
from vsight.utils import get_json, normalize_host, post_json


logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 10


class RankProvider:
    """One search-rank backend; subclasses implement ``search``."""

    name = ""
    MAX_WORKERS = 4

    def __init__(self, timeout_sec: int = 40) -> None:
        self.timeout_sec = max(5, int(timeout_sec))

    def search(self, keyword: str, region: Region, top_n: int) -> list[dict[str, str]]:
        """Return up to ``top_n`` organic results as ``{"url", "title"}`` in rank order."""
        raise NotImplementedError

    def rank_keyword(
        self,
        keyword: str,
        region: Region,
        top_n: int = DEFAULT_TOP_N,
        domain: str | None = None,
    ) -> RankResult:
        target = normalize_host(domain or "")
        items = self.search(keyword, region, top_n)[: max(1, int(top_n))]
        rows = [
            RankRow(
                keyword=keyword,
                rank=index,
                url=item.get("url", ""),
                title=item.get("title", ""),
                provider=self.name,
                domain_match=bool(target) and normalize_host(item.get("url", "")) == target,
            )
            for index, item in enumerate(items, start=1)
        ]
        return RankResult(keyword=keyword, region=region, rows=rows)

    def check_ranks(
        self,
        keywords: Sequence[str],
        region: Region,
        top_n: int = DEFAULT_TOP_N,
        domain: str | None = None,
    ) -> list[RankResult]:
        """Rank every keyword independently; the first failure aborts the batch."""
        cleaned = [keyword.strip() for keyword in keywords if keyword and keyword.strip()]
        if not cleaned:
            return []
        workers = min(self.MAX_WORKERS, len(cleaned))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(self.rank_keyword, keyword, region, top_n, domain)
                for keyword in cleaned
            ]
            try:
                return [future.result() for future in futures]
            except Exception:
                for future in futures:
                    future.cancel()
                raise

    def top_url(self, keyword: str, region: Region) -> str:
        items = self.search(keyword, region, 1)
        return items[0].get("url", "") if items else ""


class BraveProvider(RankProvider):
    name = "brave"
    ENDPOINT = "https://api.search.brave.com/res/v1/web/search"
    MAX_COUNT = 20

    def __init__(self, api_key: str, timeout_sec: int = 40) -> None:
        super().__init__(timeout_sec)
        self.api_key = api_key.strip()
        if not self.api_key:
            raise ProviderNotConfigured("BRAVE_API_KEY missing")

    @staticmethod
    def _web_results(payload: dict[str, Any]) -> list[dict[str, Any]]:
        web = (payload.get("web") or {}).get("results")
        if isinstance(web, list) and web:
            return web
        mixed = (payload.get("mixed") or {}).get("results") or []
        out: list[dict[str, Any]] = []
        for block in mixed:
            if isinstance(block, dict) and block.get("type") == "web":
                out.extend(block.get("results") or [])
        return out

    def search(self, keyword: str, region: Region, top_n: int) -> list[dict[str, str]]:
        normalized = normalize_region(region.country, region.state)
        params: dict[str, Any] = {
            "q": keyword,
            "count": max(1, min(int(top_n), self.MAX_COUNT)),
        }
        if normalized.iso2:
            params["country"] = normalized.iso2
        payload = get_json(
            self.ENDPOINT,
            params=params,
            headers={"X-Subscription-Token": self.api_key, "Accept": "application/json"},
            timeout=self.timeout_sec,
            service="Brave",
        )
        results = self._web_results(payload if isinstance(payload, dict) else {})
        return [
            {
                "url": str(item.get("url") or item.get("link") or ""),
                "title": str(item.get("title") or (item.get("meta") or {}).get("title") or ""),
            }
            for item in results
            if isinstance(item, dict)
        ]


class DataForSeoProvider(RankProvider):
    name = "dataforseo"
    ENDPOINT = "https://api.dataforseo.com/v3/serp/google/organic/live/advanced"
    MAX_DEPTH = 100
    TASK_OK = 20000

    def __init__(
        self,
        login: str,
        password: str,
        language_name: str = "English",
        timeout_sec: int = 40,
    ) -> None:
        super().__init__(timeout_sec)
        self.login = login.strip()
        self.password = password.strip()
        self.language_name = language_name.strip() or "English"
        if not (self.login and self.password):
            raise ProviderNotConfigured("DATAFORSEO_LOGIN / DATAFORSEO_PASSWORD not configured")

    def search(self, keyword: str, region: Region, top_n: int) -> list[dict[str, str]]:
        normalized = normalize_region(region.country, region.state)
        body = [
            {
                "keyword": keyword,
                "location_name": normalized.location_name,
                "language_name": self.language_name,
                "depth": max(1, min(int(top_n), self.MAX_DEPTH)),
            }
        ]
        payload = post_json(
            self.ENDPOINT,
            body,
            auth=(self.login, self.password),
            timeout=self.timeout_sec,
            service="DataForSEO",
        )
        tasks = (payload or {}).get("tasks") or [{}]
        task = tasks[0] or {}
        status = int(task.get("status_code") or self.TASK_OK)
        if status != self.TASK_OK:
            raise UpstreamError(
                502,
                f"DataForSEO task failed ({status}): {task.get('status_message') or 'unknown error'}",
                service="DataForSEO",
            )
        results = task.get("result") or [{}]
        items = (results[0] or {}).get("items") or []
        return [
            {"url": str(item.get("url") or ""), "title": str(item.get("title") or "")}
            for item in items
            if isinstance(item, dict) and item.get("type") == "organic"
        ]


def build_rank_provider(config: AppConfig) -> RankProvider:
    provider = config.serp_provider
    if provider == "brave":
        return BraveProvider(config.brave_api_key, timeout_sec=config.http_timeout_sec)
    if provider == "dataforseo":
        return DataForSeoProvider(
            config.dataforseo_login,
            config.dataforseo_password,
            language_name=config.dataforseo_language,
            timeout_sec=config.http_timeout_sec,
        )
    if not provider:
        raise ProviderNotConfigured("SERP_PROVIDER not set. Use 'brave' or 'dataforseo'.")
    raise ProviderNotConfigured(
        f"Unknown SERP_PROVIDER {provider!r}. Use 'brave' or 'dataforseo'."
    )
