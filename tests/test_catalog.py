"""Tests for the in-memory and spreadsheet catalogs."""

import pytest

from core.catalog import MemoryCatalog, load_catalog_file, read_input
from core.fields import category_path
from core.models import TYPE_VARIABLE, TYPE_VARIATION, Product

SPREADSHEET = """id,type,parent_id,name,price,stock_quantity,stock_status,image,gallery,categories,brand,length,dimension_unit,sku,meta:_ean,attribute:pa_color
10,variable,,Trail Runner,,,,runner.jpg,runner-2.jpg|runner-3.jpg,Shoes > Running|Shoes > Trail,Acme,,,,,
11,variation,10,Trail Runner - Red,89.00,5,instock,,,,,30,cm,,7612345000011,Red
12,variation,10,Trail Runner - Blue,89.50,,outofstock,,,,,,,,7612345000028,Blue
20,simple,,Running Socks,9.90,,,,,Shoes > Socks,,,,76123450000,,
,simple,,No id,1.00,,,,,,,,,,,
"""


@pytest.fixture
def sheet(tmp_path):
    path = tmp_path / "catalog.csv"
    path.write_text(SPREADSHEET, encoding="utf-8")
    return path


class TestMemoryCatalog:
    def test_lists_simple_and_variable_only(self, shoe_catalog):
        assert shoe_catalog.list_product_ids() == [10, 20]

    def test_variation_is_not_a_product(self, shoe_catalog):
        assert shoe_catalog.get_product(11) is None
        assert shoe_catalog.get_product(404) is None

    def test_variations_by_parent_id(self):
        parent = Product(1, "P", product_type=TYPE_VARIABLE)
        child = Product(2, "C", product_type=TYPE_VARIATION, parent_id=1)
        catalog = MemoryCatalog([parent, child])
        assert catalog.list_variation_ids(parent) == [2]
        assert catalog.get_variation(2, parent) is child
        assert catalog.get_variation(1, parent) is None


class TestSpreadsheetCatalog:
    def test_rows(self, sheet):
        rows = read_input(sheet)
        assert rows[0]["name"] == "Trail Runner"
        assert rows[1]["meta:_ean"] == "7612345000011"

    def test_unsupported_format(self, tmp_path):
        with pytest.raises(ValueError, match="Unsupported catalog format"):
            read_input(tmp_path / "catalog.json")

    def test_load(self, sheet):
        catalog = load_catalog_file(sheet)

        assert catalog.list_product_ids() == [10, 20]
        runner = catalog.get_product(10)
        assert runner.is_variable
        assert catalog.list_variation_ids(runner) == [11, 12]
        assert [category_path(t) for t in runner.categories] == ["Shoes > Running", "Shoes > Trail"]
        assert runner.categories[0].parent is runner.categories[1].parent
        assert runner.taxonomies == {"product_brand": ["Acme"]}
        assert runner.gallery == ["runner-2.jpg", "runner-3.jpg"]

        red = catalog.get_variation(11, runner)
        assert red.price == "89.00"
        assert red.stock_quantity == 5
        assert red.length == "30"
        assert red.meta == {"_ean": "7612345000011"}
        assert red.attributes == {"pa_color": "Red"}

        blue = catalog.get_variation(12, runner)
        assert blue.stock_quantity is None
        assert blue.in_stock is False

        socks = catalog.get_product(20)
        assert socks.sku == "76123450000"
        assert socks.price == "9.90"
