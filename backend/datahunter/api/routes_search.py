from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from datahunter.core.config import Settings, get_settings
from datahunter.core.hunter import DataHunter, Variant
from datahunter.core.markets import market_catalog
from datahunter.schemas.product import ProductRecord

router = APIRouter(prefix="/api", tags=["search"])


def get_hunter(settings: Settings = Depends(get_settings)) -> DataHunter:
    return DataHunter(settings)


@router.get("/search", response_model=ProductRecord)
async def search(
    identifier: Optional[str] = None,
    market: str = Query(..., min_length=1),
    variant: Optional[Variant] = None,
    gtin: Optional[str] = None,  # older batch clients send ?gtin=
    hunter: DataHunter = Depends(get_hunter),
):
    """
    Resolve one GTIN/EAN for a market.
    Always answers 200 with a full record; upstream problems land in `status`.
    """
    code = (identifier or gtin or "").strip()
    if not code:
        raise HTTPException(status_code=422, detail="identifier (or gtin) is required")

    return await hunter.process_product(code, market, variant.value if variant else None)


@router.get("/markets")
def markets():
    return {"markets": market_catalog()}
