import base64
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from datahunter.core.config import Settings
from datahunter.core.markets import (
    IMAGE_CATALOG_SITES,
    IMAGE_DENY_SITES,
    TEXT_DENY_SITES,
    region_code,
    site_exclusions,
    site_filter,
    trusted_retailer_filter,
)
from datahunter.core.serpapi import SearchKind, SerpApiClient
from datahunter.schemas.product import ProductQuery

logger = logging.getLogger(__name__)

PLACEHOLDER_MARKER = "placeholder"
DEFAULT_IMAGE_MIME = "image/jpeg"


class ImageRejected(Exception):
    pass


@dataclass(frozen=True)
class ImageEvidence:
    image_url: str
    source_url: Optional[str]
    encoded_image: str  # base64
    mime_type: str = DEFAULT_IMAGE_MIME


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")


def _mime_from_headers(resp: httpx.Response) -> str:
    ctype = (resp.headers.get("content-type") or "").split(";")[0].strip().lower()
    return ctype if ctype.startswith("image/") else DEFAULT_IMAGE_MIME


class EvidenceFinder:
    """
    Finds a pack shot and a page to read for an identifier.
    Nothing here raises for "not found"; absent evidence is just None.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient, search: SerpApiClient):
        self.settings = settings
        self.client = client
        self.search = search

    async def find_best_image(self, query: ProductQuery) -> Optional[ImageEvidence]:
        if not self.search.enabled:
            return None

        gl = region_code(query.market)

        q = f'{site_filter(IMAGE_CATALOG_SITES)} "{query.identifier}"'
        results = await self.search.search(q, SearchKind.IMAGE, gl)

        if not results:
            logger.info("No catalog images for %s; broadening image search", query.identifier)
            q = f"{query.identifier} {site_exclusions(IMAGE_DENY_SITES)}"
            results = await self.search.search(q, SearchKind.IMAGE, gl)

        for img in results[: self.settings.IMAGE_CANDIDATE_LIMIT]:
            url = img.get("original")
            if not url or PLACEHOLDER_MARKER in url:
                continue

            try:
                data, mime = await self._download(url)
            except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError, ImageRejected) as e:
                logger.info("Skipping image %s: %s: %s", url, e.__class__.__name__, e)
                continue

            return ImageEvidence(
                image_url=url,
                source_url=img.get("link"),
                encoded_image=_b64(data),
                mime_type=mime,
            )

        logger.info("No usable image for %s", query.identifier)
        return None

    async def _download(self, url: str):
        """
        Stream the image and give up once it passes IMAGE_MAX_BYTES.
        """
        limit = self.settings.IMAGE_MAX_BYTES
        async with self.client.stream(
            "GET",
            url,
            timeout=self.settings.PAGE_FETCH_TIMEOUT_SECONDS,
            follow_redirects=True,
        ) as resp:
            resp.raise_for_status()

            declared = resp.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > limit:
                raise ImageRejected(f"{declared} bytes > {limit}")

            chunks = []
            size = 0
            async for chunk in resp.aiter_bytes():
                size += len(chunk)
                if size > limit:
                    raise ImageRejected(f"more than {limit} bytes")
                chunks.append(chunk)

            if not size:
                raise ImageRejected("empty body")

            return b"".join(chunks), _mime_from_headers(resp)

    async def find_text_source(self, query: ProductQuery) -> Optional[str]:
        if not self.search.enabled:
            return None

        gl = region_code(query.market)

        retailers = trusted_retailer_filter(query.market)
        if retailers:
            q = f"{retailers} {query.identifier} {site_exclusions(TEXT_DENY_SITES)}"
            organic = await self.search.search(q, SearchKind.ORGANIC, gl)
            for r in organic[:1]:
                link = r.get("link")
                if isinstance(link, str) and link.strip():
                    return link.strip()
            logger.info("No trusted retailer page for %s in %s", query.identifier, query.market)

        shopping = await self.search.search(query.identifier, SearchKind.SHOPPING, gl)
        for r in shopping[:1]:
            link = r.get("link")
            if isinstance(link, str) and link.strip():
                return link.strip()

        logger.info("No text source for %s", query.identifier)
        return None
