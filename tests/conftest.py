"""Shared fixtures: a small shoe shop catalog and export configuration."""

import pytest

from core.catalog import MemoryCatalog
from core.logstore import LogStore
from core.models import (
    TYPE_VARIABLE,
    TYPE_VARIATION,
    CategoryTerm,
    ExportSettings,
    Product,
)
from core.processing import ExportEngine
from core.settings import SyncConfig


@pytest.fixture
def make_product():
    """Factory for simple products with a valid price and EAN unless overridden."""

    def _make(product_id=1, **kwargs):
        values = {
            "name": f"Product {product_id}",
            "price": "19.90",
            "meta": {"_ean": f"76100000{product_id:05d}"},
        }
        values.update(kwargs)
        return Product(product_id=product_id, **values)

    return _make


@pytest.fixture
def shoe_products():
    """One variable product with two variations plus one simple product."""
    shoes = CategoryTerm(1, "Shoes")
    running = CategoryTerm(2, "Running", parent=shoes)

    runner = Product(
        product_id=10,
        name="Trail Runner",
        product_type=TYPE_VARIABLE,
        price="89.00",
        image="https://shop.example/img/runner.jpg",
        gallery=["https://shop.example/img/runner-2.jpg", "https://shop.example/img/runner-3.jpg"],
        description="<p>Light &amp; <strong>fast</strong></p>",
        categories=[running],
        taxonomies={"product_brand": ["Acme"]},
        attributes={"pa_color": "Red, Blue", "pa_size": "42, 43"},
        variation_ids=[11, 12],
    )
    red = Product(
        product_id=11,
        name="Trail Runner - Red",
        product_type=TYPE_VARIATION,
        price="89.00",
        stock_quantity=5,
        length="30",
        width="12",
        height="10.5",
        weight="0.65",
        meta={"_ean": "7612345000011"},
        attributes={"pa_color": "Red", "pa_size": "42"},
        parent_id=10,
    )
    blue = Product(
        product_id=12,
        name="Trail Runner - Blue",
        product_type=TYPE_VARIATION,
        price="89.5",
        stock_quantity=None,
        in_stock=True,
        image="https://shop.example/img/runner-blue.jpg",
        meta={"_ean": "7612345000028"},
        attributes={"pa_color": "Blue", "pa_size": "43"},
        parent_id=10,
    )
    socks = Product(
        product_id=20,
        name="Running Socks",
        price="9.9",
        sku="76123450000",
        categories=[CategoryTerm(3, "Accessories")],
        meta={"_brand": "SockCo"},
    )
    return [runner, red, blue, socks]


@pytest.fixture
def shoe_catalog(shoe_products):
    return MemoryCatalog(shoe_products)


@pytest.fixture
def config(tmp_path):
    return SyncConfig(settings=ExportSettings(), export_dir=tmp_path / "exports")


@pytest.fixture
def log_store():
    return LogStore()


@pytest.fixture
def engine(shoe_catalog, log_store):
    return ExportEngine(shoe_catalog, log_store)
