from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

import pandas as pd

from core.models import (
    TYPE_SIMPLE,
    TYPE_VARIABLE,
    TYPE_VARIATION,
    CategoryTerm,
    Product,
    parse_flag,
)

logger = logging.getLogger(__name__)

EXPORTABLE_TYPES = (TYPE_SIMPLE, TYPE_VARIABLE)


class Catalog(Protocol):
    """Read access to the shop catalog, as needed by the export engine."""

    def list_product_ids(self) -> List[int]:
        """Ids of published simple and variable products."""
        ...

    def get_product(self, product_id: int) -> Optional[Product]:
        ...

    def list_variation_ids(self, product: Product) -> List[int]:
        """Ids of the published variations of a variable product."""
        ...

    def get_variation(self, variation_id: int, parent: Product) -> Optional[Product]:
        ...


class MemoryCatalog:
    """Catalog over a list of already materialized products."""

    def __init__(self, products: Iterable[Product], product_ids: Optional[List[int]] = None) -> None:
        self._products: Dict[int, Product] = {}
        for product in products:
            self._products[product.product_id] = product
        self._product_ids = product_ids

    def list_product_ids(self) -> List[int]:
        if self._product_ids is not None:
            return list(self._product_ids)
        return [
            p.product_id
            for p in self._products.values()
            if p.product_type in EXPORTABLE_TYPES
        ]

    def get_product(self, product_id: int) -> Optional[Product]:
        product = self._products.get(product_id)
        if product is None or product.is_variation:
            return None
        return product

    def list_variation_ids(self, product: Product) -> List[int]:
        if product.variation_ids:
            return list(product.variation_ids)
        return [
            p.product_id
            for p in self._products.values()
            if p.is_variation and p.parent_id == product.product_id
        ]

    def get_variation(self, variation_id: int, parent: Product) -> Optional[Product]:
        variation = self._products.get(variation_id)
        if variation is None or not variation.is_variation:
            return None
        return variation


# ---------------------------------------------------------------------------
# Spreadsheet catalog
# ---------------------------------------------------------------------------

COL_ID = "id"
COL_TYPE = "type"
COL_PARENT = "parent_id"
COL_NAME = "name"
COL_PRICE = "price"
COL_STOCK = "stock_quantity"
COL_STOCK_STATUS = "stock_status"
COL_IMAGE = "image"
COL_GALLERY = "gallery"
COL_CATEGORIES = "categories"
COL_BRAND = "brand"
META_PREFIX = "meta:"
ATTRIBUTE_PREFIX = "attribute:"
LIST_SEPARATOR = "|"


def read_input(path: Path) -> List[Dict[str, Any]]:
    """Read CSV or XLSX into a list of dict rows."""
    suffix = path.suffix.lower()
    if suffix == ".csv":
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    elif suffix in {".xlsx", ".xls"}:
        df = pd.read_excel(path, dtype=str)
        df = df.fillna("")
    else:
        raise ValueError(f"Unsupported catalog format: {suffix} (use CSV or XLSX)")
    df.columns = [str(c).strip() for c in df.columns]
    return df.to_dict(orient="records")


def _split(value: str) -> List[str]:
    return [part.strip() for part in (value or "").split(LIST_SEPARATOR) if part.strip()]


def _optional_int(value: str) -> Optional[int]:
    value = (value or "").strip()
    if not value:
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


class _TermRegistry:
    """Builds shared CategoryTerm chains from 'Root > Mid > Leaf' strings."""

    def __init__(self) -> None:
        self._terms: Dict[str, CategoryTerm] = {}

    def term_for(self, path: str) -> Optional[CategoryTerm]:
        names = [n.strip() for n in path.split(">") if n.strip()]
        parent: Optional[CategoryTerm] = None
        key = ""
        for name in names:
            key = f"{key}>{name}"
            term = self._terms.get(key)
            if term is None:
                term = CategoryTerm(term_id=len(self._terms) + 1, name=name, parent=parent)
                self._terms[key] = term
            parent = term
        return parent


def product_from_row(row: Dict[str, Any], terms: _TermRegistry) -> Optional[Product]:
    get = lambda key: str(row.get(key) or "").strip()  # noqa: E731

    product_id = _optional_int(get(COL_ID))
    if product_id is None:
        return None
    product_type = (get(COL_TYPE) or TYPE_SIMPLE).lower()

    meta = {k[len(META_PREFIX):]: get(k) for k in row if k.startswith(META_PREFIX) and get(k)}
    attributes = {
        k[len(ATTRIBUTE_PREFIX):]: get(k)
        for k in row
        if k.startswith(ATTRIBUTE_PREFIX) and get(k)
    }
    categories = [t for t in (terms.term_for(p) for p in _split(get(COL_CATEGORIES))) if t]
    taxonomies = {"product_brand": [get(COL_BRAND)]} if get(COL_BRAND) else {}

    gallery = _split(get(COL_GALLERY))
    stock_status = get(COL_STOCK_STATUS).lower()

    return Product(
        product_id=product_id,
        name=get(COL_NAME),
        product_type=product_type,
        price=get(COL_PRICE) or None,
        stock_quantity=_optional_int(get(COL_STOCK)),
        in_stock=stock_status in ("", "instock") or parse_flag(stock_status),
        length=get("length") or None,
        width=get("width") or None,
        height=get("height") or None,
        dimension_unit=get("dimension_unit") or "cm",
        weight=get("weight") or None,
        weight_unit=get("weight_unit") or "kg",
        image=get(COL_IMAGE) or None,
        gallery=gallery,
        description=get("description"),
        short_description=get("short_description"),
        meta=meta,
        categories=categories,
        taxonomies=taxonomies,
        attributes=attributes,
        sku=get("sku"),
        parent_id=_optional_int(get(COL_PARENT)) if product_type == TYPE_VARIATION else None,
    )


def load_catalog_file(path: Path) -> MemoryCatalog:
    """
    Load a catalog spreadsheet: one row per product or variation.

    Variations reference their variable product in `parent_id`. Columns
    prefixed `meta:` become metadata, `attribute:` become attributes;
    `gallery` and `categories` hold '|'-separated lists, categories written
    as 'Root > Child' paths.
    """
    rows = read_input(path)
    terms = _TermRegistry()
    products: List[Product] = []
    for idx, row in enumerate(rows, start=2):
        product = product_from_row(row, terms)
        if product is None:
            logger.warning("Catalog row %d has no usable id; skipping.", idx)
            continue
        products.append(product)
    logger.info("Loaded %d catalog entries from %s", len(products), path)
    return MemoryCatalog(products)
