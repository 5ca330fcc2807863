import logging
from enum import Enum
from typing import Any, Dict, List

import httpx

from datahunter.core.config import Settings

SERPAPI_BASE = "https://serpapi.com/search.json"

logger = logging.getLogger(__name__)


class SearchKind(str, Enum):
    IMAGE = "image"
    ORGANIC = "organic"
    SHOPPING = "shopping"


# tbm flag sent to Google, and the key SerpAPI returns the results under
_TBM = {SearchKind.IMAGE: "isch", SearchKind.ORGANIC: None, SearchKind.SHOPPING: "shop"}
_RESULTS_KEY = {
    SearchKind.IMAGE: "images_results",
    SearchKind.ORGANIC: "organic_results",
    SearchKind.SHOPPING: "shopping_results",
}


class SerpApiClient:
    """
    Thin SerpAPI Google engine wrapper.

    Search is evidence, never a hard dependency: a missing key, an HTTP error
    or an error payload all come back as an empty result list.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self.settings = settings
        self.client = client

    @property
    def enabled(self) -> bool:
        return self.settings.has_serpapi_key

    async def search(self, q: str, kind: SearchKind, gl: str) -> List[Dict[str, Any]]:
        if not self.enabled:
            logger.info("SERPAPI_API_KEY is not set; skipping %s search", kind.value)
            return []

        params: Dict[str, Any] = {
            "engine": "google",
            "q": q,
            "gl": gl,
            "api_key": self.settings.SERPAPI_API_KEY,
        }
        tbm = _TBM[kind]
        if tbm:
            params["tbm"] = tbm

        try:
            r = await self.client.get(
                SERPAPI_BASE,
                params=params,
                timeout=self.settings.SERPAPI_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as e:
            logger.warning("SerpAPI %s search failed: %s: %s", kind.value, e.__class__.__name__, e)
            return []

        if r.status_code != 200:
            logger.warning("SerpAPI %s search failed: %s", kind.value, r.status_code)
            return []

        try:
            data = r.json()
        except ValueError:
            logger.warning("SerpAPI %s search returned a non-JSON body", kind.value)
            return []

        # Normalize: if the engine returns an error payload, log it clearly
        if isinstance(data, dict) and data.get("error"):
            # "Google hasn't returned any results" also arrives as an error
            logger.info("SerpAPI %s search: %s", kind.value, data.get("error"))
            return []

        results = data.get(_RESULTS_KEY[kind]) if isinstance(data, dict) else None
        return [x for x in (results or []) if isinstance(x, dict)]
