from pydantic import BaseModel, field_validator
from typing import Any, Dict, Optional

MISSING = "-"

# Every record carries all of these, "-" when unknown
PRODUCT_FIELDS = (
    "product_name",
    "weight",
    "ingredients",
    "allergens",
    "may_contain",
    "nutri_scope",
    "energy",
    "fat",
    "saturates",
    "carbs",
    "sugars",
    "protein",
    "fiber",
    "salt",
    "organic_id",
)


def clean_value(v: Any) -> str:
    """Model output -> field value. None/blank become the "-" sentinel."""
    if v is None:
        return MISSING
    if isinstance(v, (list, tuple)):
        v = ", ".join(str(x).strip() for x in v if x is not None and str(x).strip())
    s = str(v).strip()
    return s or MISSING


class ProductQuery(BaseModel):
    identifier: str
    market: str

    @field_validator("identifier")
    @classmethod
    def _strip_identifier(cls, v: str) -> str:
        return v.strip()

    @field_validator("market")
    @classmethod
    def _normalize_market(cls, v: str) -> str:
        return v.strip().upper()


class ProductFields(BaseModel):
    product_name: str = MISSING
    weight: str = MISSING
    ingredients: str = MISSING
    allergens: str = MISSING
    may_contain: str = MISSING
    nutri_scope: str = MISSING
    energy: str = MISSING
    fat: str = MISSING
    saturates: str = MISSING
    carbs: str = MISSING
    sugars: str = MISSING
    protein: str = MISSING
    fiber: str = MISSING
    salt: str = MISSING
    organic_id: str = MISSING

    @field_validator(*PRODUCT_FIELDS, mode="before")
    @classmethod
    def _sentinel(cls, v: Any) -> str:
        return clean_value(v)

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "ProductFields":
        # Unknown keys from the model are dropped, missing ones defaulted
        return cls(**{k: data.get(k) for k in PRODUCT_FIELDS})


class ProductRecord(ProductFields):
    found: bool
    status: str
    identifier: str
    market: str
    image_url: Optional[str] = None
    source_url: Optional[str] = None

    @classmethod
    def empty(
        cls,
        query: ProductQuery,
        status: str,
        image_url: Optional[str] = None,
        source_url: Optional[str] = None,
    ) -> "ProductRecord":
        return cls(
            found=False,
            status=status,
            identifier=query.identifier,
            market=query.market,
            image_url=image_url,
            source_url=source_url,
        )

    @classmethod
    def from_fields(
        cls,
        query: ProductQuery,
        fields: ProductFields,
        status: str = "Found",
        image_url: Optional[str] = None,
        source_url: Optional[str] = None,
    ) -> "ProductRecord":
        return cls(
            found=True,
            status=status,
            identifier=query.identifier,
            market=query.market,
            image_url=image_url,
            source_url=source_url,
            **fields.model_dump(),
        )
