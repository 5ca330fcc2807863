import base64

import httpx
import pytest

from conftest import image_result
from datahunter.core.evidence import EvidenceFinder
from datahunter.core.serpapi import SearchKind, SerpApiClient
from datahunter.schemas.product import ProductQuery

GTIN = "5000112345678"
PNG = b"\x89PNG\r\n\x1a\nfake-image-bytes"


def _finder(settings, client):
    return EvidenceFinder(settings, client, SerpApiClient(settings, client))


def _image(body: bytes = PNG, content_type: str = "image/png") -> httpx.Response:
    return httpx.Response(200, content=body, headers={"content-type": content_type})


@pytest.mark.anyio
async def test_catalog_image_search_first(settings, client, upstream):
    upstream.serp["image"] = [[image_result("https://img.example/a.png", "https://barcodelookup.com/5000")]]
    upstream.pages["https://img.example/a.png"] = _image()

    ev = await _finder(settings, client).find_best_image(ProductQuery(identifier=GTIN, market="DE"))

    assert ev.image_url == "https://img.example/a.png"
    assert ev.source_url == "https://barcodelookup.com/5000"
    assert base64.b64decode(ev.encoded_image) == PNG
    assert ev.mime_type == "image/png"

    calls = upstream.serp_calls()
    assert len(calls) == 1
    assert calls[0]["tbm"] == "isch"
    assert "site:barcodelookup.com" in calls[0]["q"]
    assert f'"{GTIN}"' in calls[0]["q"]


@pytest.mark.anyio
async def test_broadened_search_when_catalog_empty(settings, client, upstream):
    upstream.serp["image"] = [[], [image_result("https://img.example/b.jpg")]]
    upstream.pages["https://img.example/b.jpg"] = _image(content_type="application/octet-stream")

    ev = await _finder(settings, client).find_best_image(ProductQuery(identifier=GTIN, market="DE"))

    calls = upstream.serp_calls()
    assert len(calls) == 2
    assert "site:barcodelookup.com" in calls[0]["q"]
    assert calls[1]["q"].startswith(GTIN)
    assert "-site:openfoodfacts.org" in calls[1]["q"]
    assert "-site:ebay.*" in calls[1]["q"]
    assert ev.image_url == "https://img.example/b.jpg"
    assert ev.mime_type == "image/jpeg"


@pytest.mark.anyio
async def test_no_images_at_all_is_none(settings, client, upstream):
    ev = await _finder(settings, client).find_best_image(ProductQuery(identifier=GTIN, market="DE"))
    assert ev is None
    assert len(upstream.serp_calls()) == 2


@pytest.mark.anyio
async def test_placeholder_and_null_candidates_skipped(settings, client, upstream):
    upstream.serp["image"] = [
        [
            image_result(None),
            image_result("https://img.example/placeholder.png"),
            image_result("https://img.example/real.png", "https://shop.example/real"),
        ]
    ]
    upstream.pages["https://img.example/real.png"] = _image()

    ev = await _finder(settings, client).find_best_image(ProductQuery(identifier=GTIN, market="DE"))

    assert ev.image_url == "https://img.example/real.png"
    assert upstream.fetched_urls() == ["https://img.example/real.png"]


@pytest.mark.anyio
async def test_failed_downloads_fall_through_to_next(settings, client, upstream):
    upstream.serp["image"] = [
        [
            image_result("https://img.example/404.png"),
            image_result("https://img.example/ok.png", "https://shop.example/ok"),
        ]
    ]
    upstream.pages["https://img.example/ok.png"] = _image()

    ev = await _finder(settings, client).find_best_image(ProductQuery(identifier=GTIN, market="DE"))

    assert ev.source_url == "https://shop.example/ok"
    assert upstream.fetched_urls() == ["https://img.example/404.png", "https://img.example/ok.png"]


@pytest.mark.anyio
async def test_only_first_five_candidates_examined(settings, client, upstream):
    urls = [f"https://img.example/{i}.png" for i in range(7)]
    upstream.serp["image"] = [[image_result(u) for u in urls]]
    # only the 6th and 7th would download
    upstream.pages[urls[5]] = _image()
    upstream.pages[urls[6]] = _image()

    ev = await _finder(settings, client).find_best_image(ProductQuery(identifier=GTIN, market="DE"))

    assert ev is None
    assert upstream.fetched_urls() == urls[:5]


@pytest.mark.anyio
async def test_oversized_image_skipped(make_settings, upstream):
    settings = make_settings(IMAGE_MAX_BYTES=10)
    client = httpx.AsyncClient(transport=upstream.transport())
    upstream.serp["image"] = [
        [image_result("https://img.example/huge.png"), image_result("https://img.example/small.png")]
    ]
    upstream.pages["https://img.example/huge.png"] = _image(b"x" * 11)
    upstream.pages["https://img.example/small.png"] = _image(b"y" * 10)

    ev = await _finder(settings, client).find_best_image(ProductQuery(identifier=GTIN, market="DE"))

    assert ev.image_url == "https://img.example/small.png"


@pytest.mark.anyio
async def test_uk_searches_use_gb(settings, client, upstream):
    finder = _finder(settings, client)
    q = ProductQuery(identifier=GTIN, market="UK")

    await finder.find_best_image(q)
    await finder.find_text_source(q)

    calls = upstream.serp_calls()
    assert calls
    assert all(c["gl"] == "gb" for c in calls)


@pytest.mark.anyio
async def test_text_source_prefers_trusted_retailers(settings, client, upstream):
    upstream.serp["organic"] = [[{"link": "https://www.tesco.com/p/1"}, {"link": "https://other.example"}]]

    url = await _finder(settings, client).find_text_source(ProductQuery(identifier=GTIN, market="UK"))

    assert url == "https://www.tesco.com/p/1"
    calls = upstream.serp_calls()
    assert len(calls) == 1
    assert "tbm" not in calls[0]
    assert "site:tesco.com" in calls[0]["q"]
    assert "-site:wikipedia.org" in calls[0]["q"]


@pytest.mark.anyio
async def test_text_source_falls_back_to_shopping(settings, client, upstream):
    upstream.serp["shopping"] = [[{"link": "https://shop.example/listing"}]]

    url = await _finder(settings, client).find_text_source(ProductQuery(identifier=GTIN, market="UK"))

    assert url == "https://shop.example/listing"
    calls = upstream.serp_calls()
    assert [c.get("tbm") for c in calls] == [None, "shop"]
    assert calls[1]["q"] == GTIN


@pytest.mark.anyio
async def test_text_source_without_curated_sites_goes_straight_to_shopping(settings, client, upstream):
    url = await _finder(settings, client).find_text_source(ProductQuery(identifier=GTIN, market="AT"))

    assert url is None
    assert [c.get("tbm") for c in upstream.serp_calls()] == ["shop"]


@pytest.mark.anyio
async def test_missing_serpapi_key_means_no_evidence(make_settings, upstream):
    settings = make_settings(SERPAPI_API_KEY="  ")
    client = httpx.AsyncClient(transport=upstream.transport())
    finder = _finder(settings, client)
    q = ProductQuery(identifier=GTIN, market="DE")

    assert await finder.find_best_image(q) is None
    assert await finder.find_text_source(q) is None
    assert await SerpApiClient(settings, client).search("x", SearchKind.ORGANIC, "de") == []
    assert upstream.requests == []


@pytest.mark.anyio
async def test_serpapi_failures_are_empty_results(settings):
    def handler(request):
        if request.url.params.get("tbm") == "isch":
            return httpx.Response(200, json={"error": "Google hasn't returned any results for this query."})
        if request.url.params.get("tbm") == "shop":
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(401, json={"error": "Invalid API key"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    search = SerpApiClient(settings, client)

    assert await search.search("q", SearchKind.IMAGE, "de") == []
    assert await search.search("q", SearchKind.SHOPPING, "de") == []
    assert await search.search("q", SearchKind.ORGANIC, "de") == []


@pytest.mark.anyio
@pytest.mark.parametrize("bad_url", ["https://[::1/a.png", "https://\x00img.example/a.png"])
async def test_malformed_image_url_skipped(settings, client, upstream, bad_url):
    upstream.serp["image"] = [[image_result(bad_url), image_result("https://img.example/ok.png", "https://shop.example/ok")]]
    upstream.pages["https://img.example/ok.png"] = _image()

    ev = await _finder(settings, client).find_best_image(ProductQuery(identifier=GTIN, market="DE"))

    assert ev.image_url == "https://img.example/ok.png"
    assert upstream.fetched_urls() == ["https://img.example/ok.png"]
