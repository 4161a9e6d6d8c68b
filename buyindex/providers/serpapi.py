"""Shared SerpAPI ``search.json`` client used by the social and trend providers."""

import json
from typing import Any, Dict, Optional

import requests

from buyindex.core.cache import SQLiteCache
from buyindex.core.errors import ConfigurationMissing, TransientFailure
from buyindex.core.logger import logger
from buyindex.core.retry import with_retries

_SERPAPI_URL = "https://serpapi.com/search.json"


class SerpApiClient:
    """Thin, cache-aware wrapper around SerpAPI.

    Args:
        api_key: SerpAPI key; None means the client is unconfigured.
        cache_instance: Optional response cache keyed on the query parameters.
        timeout: Request timeout in seconds.
        geo: Default ``gl``/``geo`` country code.
        hl: Default interface language.
    """

    def __init__(
        self,
        api_key: Optional[str],
        cache_instance: Optional[SQLiteCache] = None,
        timeout: float = 20,
        geo: str = "US",
        hl: str = "en",
    ) -> None:
        self.api_key = api_key
        self.cache = cache_instance
        self.timeout = timeout
        self.geo = geo
        self.hl = hl

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def search(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Run one SerpAPI query and return the decoded JSON body.

        Raises:
            ConfigurationMissing: No API key.
            TransientFailure: Network/HTTP failure or an ``error`` in the body.
        """
        if not self.configured:
            raise ConfigurationMissing("SERPAPI_API_KEY is not configured")

        cache_key = "serpapi_" + json.dumps(params, sort_keys=True)
        if self.cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        logger.info(
            f"SerpApiClient: engine={params.get('engine')} q={params.get('q')!r}"
            f"{' data_type=' + params['data_type'] if 'data_type' in params else ''}"
        )
        try:
            resp = self._get({**params, "api_key": self.api_key})
        except requests.RequestException as exc:
            raise TransientFailure(f"SerpAPI request failed: {exc}") from exc

        if resp.status_code != 200:
            raise TransientFailure(f"SerpAPI error {resp.status_code}: {resp.text[:200]}")
        try:
            body = resp.json()
        except ValueError as exc:
            raise TransientFailure(f"SerpAPI returned invalid JSON: {exc}") from exc
        if body.get("error"):
            raise TransientFailure(f"SerpAPI: {body['error']}")

        if self.cache:
            self.cache.set(cache_key, body)
        return body

    @with_retries(max_retries=2, initial_delay=1, retry_on=(requests.ConnectionError, requests.Timeout))
    def _get(self, params: Dict[str, Any]) -> requests.Response:
        return requests.get(_SERPAPI_URL, params=params, timeout=self.timeout)
