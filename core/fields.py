from __future__ import annotations

import html
import re
from typing import Any, Dict, List, Optional

from core.models import CategoryTerm, Product

# Checked in order on the unit, then on its parent.
GTIN_META_KEYS = [
    "_gtin",
    "_ean",
    "_isbn",
    "_upc",
    "_barcode",
    "gtin",
    "ean",
    "isbn",
    "upc",
    "barcode",
    "_global_unique_id",  # WooCommerce native "GTIN, UPC, EAN or ISBN" field
]
GTIN_SKU_PATTERN = re.compile(r"[0-9]{8,14}")

BRAND_TAXONOMIES = ["product_brand", "pa_brand", "brand", "pwb-brand"]
BRAND_META_KEYS = ["_brand", "brand", "_product_brand"]

CATEGORY_SEPARATOR = " > "
MAX_GALLERY_IMAGES = 4

_SCRIPT_STYLE_RE = re.compile(r"<(script|style)[^>]*?>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")


def _clean(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    return str(value).strip()


def _first_meta(product: Product, keys: List[str]) -> str:
    for key in keys:
        value = _clean(product.meta.get(key))
        if value:
            return value
    return ""


def resolve_gtin(unit: Product, parent: Optional[Product] = None) -> str:
    """GTIN/EAN/ISBN/UPC from meta (unit, then parent), else a GTIN-shaped SKU."""
    gtin = _first_meta(unit, GTIN_META_KEYS)
    if gtin:
        return gtin
    if parent is not None:
        gtin = _first_meta(parent, GTIN_META_KEYS)
        if gtin:
            return gtin
    sku = (unit.sku or "").strip()
    if sku and GTIN_SKU_PATTERN.fullmatch(sku):
        return sku
    return ""


def resolve_brand(unit: Product, parent: Optional[Product] = None) -> str:
    """
    First term of the first known brand taxonomy (taxonomies live on the
    parent for variations), then brand meta on the unit. Empty when nothing
    matches; the caller substitutes the configured default brand.
    """
    owner = parent or unit
    for taxonomy in BRAND_TAXONOMIES:
        for name in owner.taxonomies.get(taxonomy) or []:
            name = _clean(name)
            if name:
                return name
    return _first_meta(unit, BRAND_META_KEYS)


def category_path(term: CategoryTerm) -> str:
    """Walk a term up to its root: Root > Mid > Leaf."""
    names = [term.name]
    seen = {id(term)}
    node = term.parent
    while node is not None and id(node) not in seen:
        seen.add(id(node))
        names.insert(0, node.name)
        node = node.parent
    return CATEGORY_SEPARATOR.join(names)


def resolve_categories(unit: Product, parent: Optional[Product] = None) -> Dict[str, str]:
    """
    Returns {"primary": <first term path>, "seller": <all distinct paths>}.

    Distinct full paths are joined with the same " > " separator used inside a
    path; the marketplace's seller_category parser expects exactly that.
    """
    owner = parent or unit
    paths: List[str] = []
    for term in owner.categories:
        path = category_path(term)
        if path not in paths:
            paths.append(path)
    if not paths:
        return {"primary": "", "seller": ""}
    return {"primary": paths[0], "seller": CATEGORY_SEPARATOR.join(paths)}


def _attribute_value(product: Product, key: str) -> str:
    wanted = key.lower()
    for name, value in product.attributes.items():
        if name.lower() == wanted:
            value = _clean(value)
            if value:
                return value
    return ""


def _attribute_forms(product: Product, name: str) -> str:
    return _attribute_value(product, f"pa_{name}") or _attribute_value(product, name)


def resolve_attribute(unit: Product, name: str, parent: Optional[Product] = None) -> str:
    """Variation selection first (pa_<name>, then <name>), then the parent's attribute."""
    if unit.is_variation:
        value = _attribute_forms(unit, name)
        if value:
            return value
    return _attribute_forms(parent or unit, name)


def resolve_colour(unit: Product, parent: Optional[Product] = None) -> str:
    return resolve_attribute(unit, "color", parent) or resolve_attribute(unit, "colour", parent)


def resolve_size(unit: Product, parent: Optional[Product] = None) -> str:
    return resolve_attribute(unit, "size", parent)


def resolve_title(unit: Product, parent: Optional[Product] = None) -> str:
    title = (parent.name if parent is not None else unit.name) or ""
    if unit.is_variation:
        parts = [_clean(v) for v in unit.attributes.values()]
        parts = [p for p in parts if p]
        if parts:
            title += " - " + ", ".join(parts)
    return title


def strip_html(text: str) -> str:
    """Drop tags (and script/style bodies), then decode entities."""
    text = _SCRIPT_STYLE_RE.sub("", text or "")
    text = _TAG_RE.sub("", text)
    return html.unescape(text).strip()


def resolve_description(unit: Product, parent: Optional[Product] = None) -> str:
    owner = parent or unit
    description = owner.description or owner.short_description or ""
    return strip_html(description)


def resolve_images(unit: Product, parent: Optional[Product] = None) -> Dict[str, Any]:
    """
    Main image from the unit, else the parent. Up to four gallery images from
    the unit's gallery; the parent's gallery only if the unit has none at all.
    """
    main = unit.image or (parent.image if parent is not None else None) or ""
    gallery = list(unit.gallery)
    if not gallery and parent is not None:
        gallery = list(parent.gallery)
    return {"main": main, "gallery": gallery[:MAX_GALLERY_IMAGES]}
