"""
Model output -> ProductRecord.

Two strategies:

- parse_product_json: the evidence pipeline asks for strict JSON with the
  15 product keys. Code fences are stripped, anything else that is not a JSON
  object is a parse failure.
- parse_markdown_table: the grounded pipeline gets free text holding a
  markdown table. The first line with a "|" and the queried identifier is
  the product row; columns map by position (TABLE_COLUMNS_V1).
"""
import json
import re
from typing import Dict, List, Optional

from datahunter.core.errors import Result, Success, parse_failure
from datahunter.schemas.product import (
    MISSING,
    ProductFields,
    ProductQuery,
    ProductRecord,
    clean_value,
)

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)

# Grounded table layout, left to right. Bump the version when the prompt's
# header changes so old/new layouts never get mixed up.
TABLE_SEPARATOR = "|"
TABLE_COLUMNS_V1 = (
    "identifier",
    "brand",
    "name",
    "weight",
    "organic_id",
    "ingredients",
    "allergens",
    "may_contain",
    "nutri_scope",
    "energy",
    "fat",
    "saturates",
    "carbs",
    "sugars",
    "fiber",
    "protein",
    "salt",
    "confidence",
)
TABLE_COLUMNS = TABLE_COLUMNS_V1

NO_DATA_STATUS = "No Data"
GROUNDED_SOURCE = "Gemini Google Search"

_URL = re.compile(r"https?://[^\s<>\"'()\[\]|]+")
_URL_TRAILING = ".,;:!?*`"


def clean_model_text(text: str) -> str:
    """Drop ```json / ``` fence markers the model wraps output in."""
    return _FENCE.sub("", text or "").strip()


def parse_product_json(text: str) -> Result:
    """
    Strict parse of the evidence pipeline's answer.
    Returns Success(ProductFields) or a PARSE Failure.
    """
    try:
        data = json.loads(clean_model_text(text))
    except ValueError as e:
        return parse_failure(e)

    if not isinstance(data, dict):
        return parse_failure(ValueError(f"expected a JSON object, got {type(data).__name__}"))

    return Success(ProductFields.from_mapping(data))


def find_table_row(text: str, identifier: str) -> Optional[List[str]]:
    """
    Cells of the first line holding both the separator and the identifier,
    with the empty cell from a leading "|" dropped.
    """
    if not identifier:
        return None

    for line in (text or "").splitlines():
        if TABLE_SEPARATOR in line and identifier in line:
            cells = [c.strip() for c in line.split(TABLE_SEPARATOR)]
            if cells and cells[0] == "":
                cells = cells[1:]
            return cells
    return None


def row_to_columns(cells: List[str]) -> Dict[str, str]:
    return {
        name: (cells[i] if i < len(cells) else "")
        for i, name in enumerate(TABLE_COLUMNS)
    }


def extract_source_urls(text: str) -> str:
    seen: List[str] = []
    for m in _URL.finditer(text or ""):
        url = m.group(0).rstrip(_URL_TRAILING)
        if url and url not in seen:
            seen.append(url)
    return ", ".join(seen) if seen else GROUNDED_SOURCE


def parse_markdown_table(text: str, query: ProductQuery) -> ProductRecord:
    cells = find_table_row(text, query.identifier)
    if cells is None:
        return ProductRecord.empty(query, NO_DATA_STATUS)

    cols = row_to_columns(cells)

    brand_name = " ".join(
        p for p in (cols["brand"], cols["name"]) if p and p != MISSING
    )

    fields = ProductFields(
        product_name=brand_name,
        weight=cols["weight"],
        ingredients=cols["ingredients"],
        allergens=cols["allergens"],
        may_contain=cols["may_contain"],
        nutri_scope=cols["nutri_scope"],
        energy=cols["energy"],
        fat=cols["fat"],
        saturates=cols["saturates"],
        carbs=cols["carbs"],
        sugars=cols["sugars"],
        protein=cols["protein"],
        fiber=cols["fiber"],
        salt=cols["salt"],
        organic_id=cols["organic_id"],
    )

    return ProductRecord.from_fields(
        query,
        fields,
        status=clean_value(cols["confidence"]),
        source_url=extract_source_urls(text),
    )
