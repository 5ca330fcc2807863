from __future__ import annotations

from typing import Dict, List, Optional

# Output language per market
MARKET_LANGUAGES: Dict[str, str] = {
    "DE": "German",
    "AT": "German",
    "CH": "German",
    "UK": "English",
    "GB": "English",
    "FR": "French",
    "BE": "French",
    "IT": "Italian",
    "ES": "Spanish",
    "NL": "Dutch",
    "DK": "Danish",
    "SE": "Swedish",
    "NO": "Norwegian",
    "PL": "Polish",
    "PT": "Portuguese",
}

DEFAULT_LANGUAGE = "English"

# Grocery retailers whose product pages carry reliable pack data
TRUSTED_RETAILERS: Dict[str, List[str]] = {
    "FR": ["carrefour.fr", "auchan.fr", "coursesu.com", "intermarche.com", "monoprix.fr", "franprix.fr"],
    "UK": ["tesco.com", "sainsburys.co.uk", "asda.com", "morrisons.com", "iceland.co.uk", "waitrose.com"],
    "NL": ["ah.nl", "jumbo.com", "plus.nl", "dirk.nl", "vomar.nl"],
    "BE": ["delhaize.be", "colruyt.be", "carrefour.be", "ah.be"],
    "DE": ["rewe.de", "edeka.de", "kaufland.de", "dm.de", "rossmann.de"],
    "DK": ["nemlig.com", "bilkatogo.dk", "rema1000.dk", "netto.dk"],
    "IT": ["carrefour.it", "conad.it", "esselunga.it", "coop.it"],
    "ES": ["carrefour.es", "mercadona.es", "dia.es", "alcampo.es"],
    "SE": ["ica.se", "coop.se", "willys.se", "hemkop.se"],
    "NO": ["oda.com", "meny.no", "spar.no"],
    "PL": ["carrefour.pl", "auchan.pl", "biedronka.pl"],
    "PT": ["continente.pt", "auchan.pt", "pingo-doce.pt"],
}

# Barcode/catalog sites tried first for pack shots
IMAGE_CATALOG_SITES: List[str] = ["barcodelookup.com", "go-upc.com", "amazon.*"]

# Aggregators and marketplaces that pollute broad image results
IMAGE_DENY_SITES: List[str] = [
    "openfoodfacts.org",
    "world.openfoodfacts.org",
    "myfitnesspal.com",
    "pinterest.*",
    "ebay.*",
]

# Open-data wikis we never want as the text source
TEXT_DENY_SITES: List[str] = ["openfoodfacts.org", "wikipedia.org"]


def normalize_market(market: Optional[str]) -> str:
    return (market or "").strip().upper()


def language_for_market(market: Optional[str]) -> str:
    return MARKET_LANGUAGES.get(normalize_market(market), DEFAULT_LANGUAGE)


def region_code(market: Optional[str]) -> str:
    """
    SerpAPI `gl` value for a market.
    SerpAPI expects "gb" for the United Kingdom, never "uk".
    """
    m = normalize_market(market)
    if m == "UK":
        return "gb"
    return m.lower()


def site_filter(domains: List[str]) -> str:
    """["a.com", "b.com"] => 'site:a.com OR site:b.com'"""
    return " OR ".join(f"site:{d}" for d in domains)


def site_exclusions(domains: List[str]) -> str:
    """["a.com", "b.com"] => '-site:a.com -site:b.com'"""
    return " ".join(f"-site:{d}" for d in domains)


def trusted_retailer_filter(market: Optional[str]) -> Optional[str]:
    sites = TRUSTED_RETAILERS.get(normalize_market(market))
    if not sites:
        return None
    return site_filter(sites)


def market_catalog() -> List[dict]:
    """Supported markets as served by GET /api/markets."""
    return [
        {
            "market": code,
            "language": lang,
            "region_code": region_code(code),
            "has_trusted_retailers": code in TRUSTED_RETAILERS,
            "trusted_retailers": TRUSTED_RETAILERS.get(code, []),
        }
        for code, lang in MARKET_LANGUAGES.items()
    ]
