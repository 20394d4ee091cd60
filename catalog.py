"""Query building for the public product listing."""
import math
import re
from typing import List, Optional, Tuple

RES_PER_PAGE = 12
MAX_PER_PAGE = 100

SORTS = {
    "price-low": [("price", 1), ("_id", -1)],
    "price-high": [("price", -1), ("_id", -1)],
    "rating": [("ratings", -1), ("_id", -1)],
    "newest": [("createdAt", -1), ("_id", -1)],
}

KEYWORD_FIELDS = ("name", "description", "brand", "category", "subcategory")


def _exact(value: str) -> dict:
    return {"$regex": f"^{re.escape(value)}$", "$options": "i"}


def build_product_query(
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    brand: Optional[str] = None,
    size: Optional[str] = None,
    color: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    rating: Optional[float] = None,
    keyword: Optional[str] = None,
    featured: Optional[bool] = None,
) -> dict:
    """AND of every filter given. Inactive products are never listed."""
    query = {"isActive": True}
    if category:
        query["category"] = category
    if subcategory:
        query["subcategory"] = subcategory
    if brand:
        query["brand"] = brand
    if size:
        query["sizes.size"] = size
    if color:
        query["colors.name"] = _exact(color)
    if min_price is not None or max_price is not None:
        query["price"] = {}
        if min_price is not None:
            query["price"]["$gte"] = min_price
        if max_price is not None:
            query["price"]["$lte"] = max_price
    if rating is not None:
        query["ratings"] = {"$gte": rating}
    if keyword:
        pattern = re.escape(keyword.strip())
        query["$or"] = [{f: {"$regex": pattern, "$options": "i"}} for f in KEYWORD_FIELDS]
    if featured is not None:
        query["isFeatured"] = featured
    return query


def sort_spec(sort: Optional[str]) -> List[Tuple[str, int]]:
    return SORTS.get(sort or "newest", SORTS["newest"])


def paginate(page: int, limit: int) -> Tuple[int, int]:
    """(skip, limit) for a 1-based page."""
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PER_PAGE)
    return (page - 1) * limit, limit


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
