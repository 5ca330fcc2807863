"""
Master data hunter: identifier + market -> ProductRecord.

Evidence pipeline ("evidence"):
    image search -> text source -> page fetch -> Gemini (image + text)
    A 400 from Gemini while the image is attached drops the image and asks
    once more with text only:

        WITH_IMAGE --BAD_REQUEST--> TEXT_ONLY --any failure--> FAILED

Grounded pipeline ("grounded"):
    Gemini with Google Search grounding -> markdown table -> ProductRecord

Whatever happens upstream, the caller gets a complete ProductRecord.
"""
import logging
from enum import Enum
from typing import Optional

import httpx

from datahunter.core.config import Settings
from datahunter.core.errors import ErrorKind, Failure, configuration_failure
from datahunter.core.evidence import EvidenceFinder, ImageEvidence
from datahunter.core.fetcher import PageFetcher
from datahunter.core.gemini import GeminiSynthesizer
from datahunter.core.normalizer import parse_markdown_table
from datahunter.core.serpapi import SerpApiClient
from datahunter.schemas.product import ProductQuery, ProductRecord

logger = logging.getLogger(__name__)

FOUND_STATUS = "Found"


class Variant(str, Enum):
    EVIDENCE = "evidence"
    GROUNDED = "grounded"


class SynthesisState(str, Enum):
    WITH_IMAGE = "with_image"
    TEXT_ONLY = "text_only"
    FAILED = "failed"


def next_state(state: SynthesisState, failure: Failure) -> SynthesisState:
    """Only a bad request with the image attached earns a second attempt."""
    if state is SynthesisState.WITH_IMAGE and failure.kind is ErrorKind.BAD_REQUEST:
        return SynthesisState.TEXT_ONLY
    return SynthesisState.FAILED


class DataHunter:
    """
    One instance can serve many requests; each process_product call opens and
    closes its own HTTP client, nothing is shared between calls.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    async def process_product(
        self,
        identifier: str,
        market: str,
        variant: Optional[str] = None,
    ) -> ProductRecord:
        query = ProductQuery(identifier=identifier, market=market)
        chosen = Variant((variant or self.settings.DEFAULT_VARIANT).strip().lower())

        if not self.settings.has_gemini_key:
            failure = configuration_failure("GEMINI_API_KEY")
            logger.error("%s: %s", query.identifier, failure.status)
            return ProductRecord.empty(query, failure.status)

        async with httpx.AsyncClient(transport=self.transport) as client:
            synthesizer = GeminiSynthesizer(self.settings, client)

            if chosen is Variant.GROUNDED:
                record = await self._grounded(query, synthesizer)
            else:
                search = SerpApiClient(self.settings, client)
                evidence = EvidenceFinder(self.settings, client, search)
                fetcher = PageFetcher(self.settings, client)
                record = await self._with_evidence(query, evidence, fetcher, synthesizer)

        logger.info(
            "%s [%s/%s] -> found=%s status=%s",
            query.identifier, query.market, chosen.value, record.found, record.status[:120],
        )
        return record

    async def _with_evidence(
        self,
        query: ProductQuery,
        evidence: EvidenceFinder,
        fetcher: PageFetcher,
        synthesizer: GeminiSynthesizer,
    ) -> ProductRecord:
        # A. Image hunt
        image: Optional[ImageEvidence] = await evidence.find_best_image(query)
        image_url = image.image_url if image else None

        # B. Data hunt: the image's own page is the best text source we have
        if image is not None:
            source_url = image.source_url
        else:
            source_url = await evidence.find_text_source(query)

        # C. Fetch content
        page_content = await fetcher.fetch(source_url)

        # D. Analyze
        state = SynthesisState.WITH_IMAGE if image is not None else SynthesisState.TEXT_ONLY
        while True:
            attached = image if state is SynthesisState.WITH_IMAGE else None
            result = await synthesizer.synthesize(query, page_content, attached)

            if not isinstance(result, Failure):
                return ProductRecord.from_fields(
                    query,
                    result.value,
                    status=FOUND_STATUS,
                    image_url=image_url,
                    source_url=source_url,
                )

            state = next_state(state, result)
            if state is SynthesisState.FAILED:
                return ProductRecord.empty(
                    query, result.status, image_url=image_url, source_url=source_url
                )

            logger.warning("Image rejected or bad request for %s. Retrying TEXT ONLY...", query.identifier)

    async def _grounded(self, query: ProductQuery, synthesizer: GeminiSynthesizer) -> ProductRecord:
        result = await synthesizer.synthesize_grounded(query)
        if isinstance(result, Failure):
            return ProductRecord.empty(query, result.status)
        return parse_markdown_table(result.value, query)
