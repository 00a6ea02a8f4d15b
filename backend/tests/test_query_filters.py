import pytest

from errors import InvalidQuery
from query_filters import (
    FLASH_SALE_FILTER,
    TOP_RATED_FILTER,
    build_order_filter,
    build_product_filter,
)


def names(documents):
    return sorted(document["name"] for document in documents)


def test_empty_params_match_everything(store, seeded_products):
    query = build_product_filter({})

    assert query == {}
    assert len(store.find("products", query)) == len(seeded_products)


def test_unknown_params_are_ignored():
    assert build_product_filter({"color": "red", "sort": "price"}) == {}


def test_price_range_is_inclusive(store, seeded_products):
    query = build_product_filter({"price": "10-50"})

    assert query == {"price": {"$gte": 10.0, "$lte": 50.0}}
    assert names(store.find("products", query)) == ["Basic tee", "Hoodie", "Polo"]


@pytest.mark.parametrize("price", ["abc-50", "10-", "10", "10-20-30", "nan-5", "1-inf", "50-10"])
def test_malformed_price_is_rejected(price):
    with pytest.raises(InvalidQuery):
        build_product_filter({"price": price})


def test_flash_sale_only_matches_boolean_true(store, seeded_products):
    query = build_product_filter({"flashSale": "true"})

    assert query == FLASH_SALE_FILTER
    assert names(store.find("products", query)) == ["Basic tee", "Hoodie"]


def test_flags_are_false_unless_literal_true():
    assert build_product_filter({"flashSale": "True"}) == {"flashSale": False}
    assert build_product_filter({"topRated": "1"}) == {"topRated": False}
    assert build_product_filter({"topRated": "true"}) == TOP_RATED_FILTER


def test_rating_defaults_to_exact_match(store, seeded_products):
    query = build_product_filter({"rating": "4"})

    assert query == {"rating": 4.0}
    assert names(store.find("products", query)) == ["Basic tee"]


def test_rating_operator_is_opt_in(store, seeded_products):
    query = build_product_filter({"rating": "lte:4"})

    assert query == {"rating": {"$lte": 4.0}}
    assert names(store.find("products", query)) == ["Basic tee", "Cheap tee", "Jacket"]


@pytest.mark.parametrize("rating", ["four", "between:3", "lte:", "inf"])
def test_malformed_rating_is_rejected(rating):
    with pytest.raises(InvalidQuery):
        build_product_filter({"rating": rating})


def test_params_combine_with_and(store, seeded_products):
    query = build_product_filter(
        {"category": "tshirt", "price": "0-20", "flashSale": "true"}
    )

    assert names(store.find("products", query)) == ["Basic tee"]


def test_order_filter_normalizes_email_and_checks_status():
    assert build_order_filter({"email": " Buyer@Example.com ", "status": "Pending"}) == {
        "email": "buyer@example.com",
        "status": "pending",
    }
    with pytest.raises(InvalidQuery):
        build_order_filter({"status": "cancelled"})
