"""Translate loosely-typed query-string parameters into MongoDB filters.

Only known parameters contribute to a filter; anything else in the query
string is ignored. A request without any known parameter yields ``{}``,
which matches every document.
"""

import math
from typing import Dict, Mapping

from credentials import normalize_email
from errors import InvalidQuery
from orders import ORDER_STATUSES

PRICE_SEPARATOR = "-"
COMPARISON_OPERATORS = {
    "lt": "$lt",
    "lte": "$lte",
    "gt": "$gt",
    "gte": "$gte",
}

FLASH_SALE_FILTER = {"flashSale": True}
TOP_RATED_FILTER = {"topRated": True}


def parse_number(name: str, value) -> float:
    try:
        numeric = float(str(value).strip())
    except (TypeError, ValueError):
        raise InvalidQuery(f"Query parameter '{name}' must be a number.")
    if not math.isfinite(numeric):
        raise InvalidQuery(f"Query parameter '{name}' must be a number.")
    return numeric


def parse_flag(value) -> bool:
    return value == "true"


def parse_rating(value):
    # "4" is an exact match; "lte:4" opts into a comparison
    raw = str(value).strip()
    operator, separator, operand = raw.partition(":")
    if not separator:
        return parse_number("rating", raw)

    mongo_operator = COMPARISON_OPERATORS.get(operator.strip().lower())
    if not mongo_operator:
        raise InvalidQuery(
            f"Unknown rating operator '{operator}'. Use one of: "
            + ", ".join(sorted(COMPARISON_OPERATORS))
            + "."
        )
    return {mongo_operator: parse_number("rating", operand)}


def parse_price_range(value) -> Dict[str, float]:
    parts = str(value).split(PRICE_SEPARATOR)
    if len(parts) != 2:
        raise InvalidQuery("Query parameter 'price' must look like 'min-max'.")

    min_price = parse_number("price", parts[0])
    max_price = parse_number("price", parts[1])
    if min_price > max_price:
        raise InvalidQuery("Query parameter 'price' has a minimum above its maximum.")
    return {"$gte": min_price, "$lte": max_price}


def build_product_filter(params: Mapping[str, str]) -> Dict[str, object]:
    query: Dict[str, object] = {}

    if params.get("rating") is not None:
        query["rating"] = parse_rating(params["rating"])
    if params.get("category") is not None:
        query["category"] = str(params["category"])
    if params.get("price") is not None:
        query["price"] = parse_price_range(params["price"])
    if params.get("flashSale") is not None:
        query["flashSale"] = parse_flag(params["flashSale"])
    if params.get("topRated") is not None:
        query["topRated"] = parse_flag(params["topRated"])

    return query


def build_order_filter(params: Mapping[str, str]) -> Dict[str, object]:
    query: Dict[str, object] = {}

    if params.get("email") is not None:
        query["email"] = normalize_email(params["email"])
    if params.get("status") is not None:
        status = str(params["status"]).strip().lower()
        if status not in ORDER_STATUSES:
            raise InvalidQuery(
                "Query parameter 'status' must be one of: "
                + ", ".join(ORDER_STATUSES)
                + "."
            )
        query["status"] = status

    return query
