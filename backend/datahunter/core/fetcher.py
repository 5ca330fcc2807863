"""
Page content fetcher.

Turns a retailer page into the plain-text evidence block handed to the model:

    VISUAL TEXT: <visible text>

    HIDDEN JSON-LD: <application/ld+json blocks>

Fetch or parse failures degrade to "" and are never raised to the caller.
"""
import logging
import re
from typing import Optional

import httpx
from bs4 import BeautifulSoup

from datahunter.core.config import Settings

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Elements that never hold product facts
NOISE_TAGS = ["script", "style", "nav", "footer", "iframe", "noscript"]

_WS = re.compile(r"\s+")


def collapse_ws(text: str) -> str:
    return _WS.sub(" ", text or "").strip()


def extract_page_content(html: str, text_limit: int = 4000, json_ld_limit: int = 2000) -> str:
    soup = BeautifulSoup(html, "lxml")

    # JSON-LD lives in <script>, so collect it before the noise is stripped
    json_ld_parts = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        block = collapse_ws(script.string or script.get_text())
        if block:
            json_ld_parts.append(block[:json_ld_limit])

    for tag in soup.find_all(NOISE_TAGS):
        tag.decompose()

    visual_text = collapse_ws(soup.get_text(" "))[:text_limit]
    json_ld = " ".join(json_ld_parts)

    return f"VISUAL TEXT: {visual_text}\n\nHIDDEN JSON-LD: {json_ld}"


class PageFetcher:
    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self.settings = settings
        self.client = client

    async def fetch(self, url: Optional[str]) -> str:
        if not url or not url.strip():
            return ""

        try:
            r = await self.client.get(
                url,
                headers={
                    "User-Agent": BROWSER_USER_AGENT,
                    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                },
                timeout=self.settings.PAGE_FETCH_TIMEOUT_SECONDS,
                follow_redirects=True,
            )
            if r.status_code != 200:
                logger.info("Page fetch %s returned %s", url, r.status_code)
                return ""

            return extract_page_content(
                r.text,
                text_limit=self.settings.PAGE_TEXT_LIMIT,
                json_ld_limit=self.settings.JSON_LD_BLOCK_LIMIT,
            )
        except Exception as e:
            # Scraped text is optional evidence; the model can still work without it
            logger.info("Page fetch %s failed: %s: %s", url, e.__class__.__name__, e)
            return ""
