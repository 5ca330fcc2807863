import json
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
import pytest

from datahunter.core.config import Settings

GEMINI_HOST = "generativelanguage.googleapis.com"
SERPAPI_HOST = "serpapi.com"

TEST_GEMINI_KEY = "test-gemini-key"
TEST_SERPAPI_KEY = "test-serp-key"

FULL_PRODUCT = {
    "product_name": "BrandX Cookies",
    "weight": "500g",
    "ingredients": "flour, sugar, butter",
    "allergens": "gluten, milk",
    "may_contain": "nuts",
    "nutri_scope": "per 100g",
    "energy": "2000 kJ / 478 kcal",
    "fat": "20g",
    "saturates": "5g",
    "carbs": "60g",
    "sugars": "30g",
    "protein": "6g",
    "fiber": "3g",
    "salt": "0.5g",
    "organic_id": "N/A",
}


def gemini_text(text: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        json={"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]},
    )


def gemini_json(obj: Dict[str, Any]) -> httpx.Response:
    return gemini_text("```json\n" + json.dumps(obj) + "\n```")


def gemini_status(status_code: int, body: str = "upstream says no") -> httpx.Response:
    return httpx.Response(status_code, text=body)


GeminiReply = Union[httpx.Response, Exception]


class FakeUpstream:
    """
    Routes every outbound request of the pipeline:

      serpapi.com            -> self.serp[kind] (list of lists, one per call) or []
      Gemini                 -> self.gemini[model] (queue of replies)
      anything else          -> self.pages[url]
    """

    def __init__(self):
        self.serp: Dict[str, List[List[dict]]] = {"image": [], "organic": [], "shopping": []}
        self.gemini: Dict[str, List[GeminiReply]] = {}
        self.pages: Dict[str, Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]] = {}
        self.requests: List[httpx.Request] = []

    # --- inspection helpers ---

    def serp_calls(self) -> List[Dict[str, str]]:
        return [dict(r.url.params) for r in self.requests if r.url.host == SERPAPI_HOST]

    def gemini_calls(self) -> List[Dict[str, Any]]:
        out = []
        for r in self.requests:
            if r.url.host == GEMINI_HOST:
                model = r.url.path.rsplit("/", 1)[-1].split(":")[0]
                out.append({"model": model, "payload": json.loads(r.content), "params": dict(r.url.params)})
        return out

    def fetched_urls(self) -> List[str]:
        return [str(r.url) for r in self.requests if r.url.host not in (SERPAPI_HOST, GEMINI_HOST)]

    # --- transport ---

    def _kind(self, params: httpx.QueryParams) -> str:
        return {"isch": "image", "shop": "shopping"}.get(params.get("tbm", ""), "organic")

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host

        if host == SERPAPI_HOST:
            kind = self._kind(request.url.params)
            queue = self.serp[kind]
            results = queue.pop(0) if queue else []
            key = {"image": "images_results", "organic": "organic_results", "shopping": "shopping_results"}[kind]
            return httpx.Response(200, json={key: results})

        if host == GEMINI_HOST:
            model = request.url.path.rsplit("/", 1)[-1].split(":")[0]
            queue = self.gemini.get(model) or []
            if not queue:
                return gemini_status(404, f"no fake reply for {model}")
            reply = queue.pop(0)
            if isinstance(reply, Exception):
                raise reply
            return reply

        page = self.pages.get(str(request.url))
        if page is None:
            return httpx.Response(404, text="not found")
        if callable(page):
            return page(request)
        return page

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    def _make(**overrides) -> Settings:
        values = {
            "GEMINI_API_KEY": TEST_GEMINI_KEY,
            "SERPAPI_API_KEY": TEST_SERPAPI_KEY,
            "GEMINI_MODELS": ["m1", "m2", "m3"],
            "GEMINI_GROUNDED_MODELS": ["g1", "g2"],
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def client(upstream: FakeUpstream) -> httpx.AsyncClient:
    # For component tests that don't go through DataHunter
    return httpx.AsyncClient(transport=upstream.transport())


def image_result(original: Optional[str], link: Optional[str] = None) -> dict:
    return {"original": original, "link": link or "https://shop.example/p/1"}
