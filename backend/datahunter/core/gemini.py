import asyncio
import logging
import random
from typing import Any, Dict, List, Optional

import httpx

from datahunter.core.config import Settings
from datahunter.core.errors import (
    Failure,
    Result,
    Success,
    bad_request_failure,
    exhausted_failure,
    redact_key,
    transport_failure,
    upstream_failure,
)
from datahunter.core.evidence import ImageEvidence
from datahunter.core.normalizer import parse_product_json
from datahunter.core.prompts import (
    GROUNDED_SYSTEM_INSTRUCTION,
    build_evidence_prompt,
    build_grounded_prompt,
)
from datahunter.schemas.product import ProductQuery

# Service endpoint for Gemini API (v1beta)
API_BASE = "https://generativelanguage.googleapis.com/v1beta"

# Not this model's day: move on to the next rung of the ladder
LADDER_ADVANCE_STATUSES = frozenset({403, 404, 429, 500, 502, 503})

# Statuses worth retrying on the same model before advancing
RETRY_STATUSES = frozenset({429, 503})

logger = logging.getLogger(__name__)


def _model_path(model_id: str) -> str:
    return model_id if model_id.startswith("models/") else f"models/{model_id}"


def _response_text(data: Any) -> str:
    """
    candidates[0].content.parts[*].text, joined.
    Grounded answers can be split over several parts.
    """
    try:
        parts = data["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError):
        return ""
    texts = [p.get("text") for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
    return "".join(texts)


class GeminiSynthesizer:
    """
    Calls a ladder of Gemini models until one produces text.

    Per model:
      200 + text        -> done
      200 + empty text  -> next model
      400               -> stop, BAD_REQUEST (caller may drop the image and retry)
      403/404/429/5xx   -> next model
      other status      -> stop, UPSTREAM_OTHER
      transport fault   -> stop, TRANSPORT
    Ladder exhausted    -> ALL_MODELS_FAILED
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self.settings = settings
        self.client = client

    def _truncate(self, body: str) -> str:
        return redact_key(body or "")[: self.settings.RESPONSE_BODY_LIMIT]

    async def _sleep_for_retry(self, resp: httpx.Response, attempt: int) -> None:
        """
        Respect Retry-After header when present; otherwise exponential backoff with jitter.
        """
        max_backoff = self.settings.GEMINI_MAX_BACKOFF_SECONDS
        retry_after = resp.headers.get("retry-after")
        if retry_after:
            try:
                wait = float(retry_after)
                await asyncio.sleep(max(0.5, min(wait, max_backoff)))
                return
            except ValueError:
                pass

        # Exponential backoff with jitter
        base = min(max_backoff, (2 ** attempt))
        jitter = random.uniform(0.0, 0.5)
        await asyncio.sleep(base + jitter)

    async def _post_with_retry(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        """
        POST with retries for 429/503 (GEMINI_MAX_RETRIES, 0 = go straight to the next model).
        """
        max_retries = max(0, self.settings.GEMINI_MAX_RETRIES)
        for attempt in range(max_retries + 1):
            resp = await self.client.post(
                url,
                params={"key": self.settings.GEMINI_API_KEY},
                json=payload,
                timeout=self.settings.GEMINI_TIMEOUT_SECONDS,
            )
            if resp.status_code in RETRY_STATUSES and attempt < max_retries:
                await self._sleep_for_retry(resp, attempt)
                continue
            return resp

    async def run_ladder(self, models: List[str], payload: Dict[str, Any]) -> Result:
        """
        Returns Success(raw_text) from the first model that answers, or a Failure.
        """
        last_error: Optional[str] = None

        for model_id in models:
            url = f"{API_BASE}/{_model_path(model_id)}:generateContent"

            try:
                r = await self._post_with_retry(url, payload)
            except httpx.HTTPError as e:
                logger.warning("Gemini transport failure model=%s: %s", model_id, e.__class__.__name__)
                return transport_failure(e)

            if r.status_code == 200:
                try:
                    text = _response_text(r.json())
                except ValueError:
                    text = ""
                if not text.strip():
                    logger.warning("Gemini returned 200 but empty text for model=%s", model_id)
                    last_error = f"empty response from {model_id}"
                    continue
                logger.info("Gemini answered model=%s", model_id)
                return Success(text)

            logger.warning("Gemini failed model=%s code=%s", model_id, r.status_code)

            if r.status_code == 400:
                return bad_request_failure(self._truncate(r.text))

            if r.status_code in LADDER_ADVANCE_STATUSES:
                last_error = f"{r.status_code} from {model_id}"
                continue

            return upstream_failure(r.status_code, self._truncate(r.text))

        return exhausted_failure(last_error)

    async def synthesize(
        self,
        query: ProductQuery,
        page_content: str,
        image: Optional[ImageEvidence] = None,
    ) -> Result:
        """
        Evidence pipeline: page text (+ optional pack shot) -> Success(ProductFields) | Failure.
        """
        parts: List[Dict[str, Any]] = [
            {"text": build_evidence_prompt(query, page_content, has_image=image is not None)}
        ]
        if image is not None:
            parts.append(
                {
                    "inline_data": {
                        "mime_type": image.mime_type,
                        "data": image.encoded_image,
                    }
                }
            )

        payload = {"contents": [{"role": "user", "parts": parts}]}

        result = await self.run_ladder(self.settings.GEMINI_MODELS, payload)
        if isinstance(result, Failure):
            return result
        return parse_product_json(result.value)

    async def synthesize_grounded(self, query: ProductQuery) -> Result:
        """
        Grounded pipeline: the model runs its own Google Search.
        Returns Success(raw_text) for the table normalizer, or a Failure.
        """
        payload = {
            "system_instruction": {"parts": [{"text": GROUNDED_SYSTEM_INSTRUCTION}]},
            "contents": [{"role": "user", "parts": [{"text": build_grounded_prompt(query)}]}],
            "tools": [{"google_search": {}}],
        }
        return await self.run_ladder(self.settings.GEMINI_GROUNDED_MODELS, payload)
