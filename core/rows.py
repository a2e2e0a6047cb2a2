from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, List, Optional, Union

from core import fields
from core.errors import DataError
from core.models import SKIP_NO_GTIN, SKIP_NO_PRICE, ExportSettings, Product, Skip
from units import to_grams, to_millimeters

logger = logging.getLogger(__name__)

# Column order of the Nalda product feed.
CSV_HEADERS = [
    "gtin",
    "title",
    "country",
    "condition",
    "price",
    "tax",
    "currency",
    "delivery_time_days",
    "stock",
    "return_days",
    "main_image_url",
    "brand",
    "category",
    "google_category",
    "seller_category",
    "description",
    "length_mm",
    "width_mm",
    "height_mm",
    "weight_g",
    "shipping_length_mm",
    "shipping_width_mm",
    "shipping_height_mm",
    "shipping_weight_g",
    "volume_ml",
    "size",
    "colour",
    "image_2_url",
    "image_3_url",
    "image_4_url",
    "image_5_url",
    "delete_product",
    "author",
    "language",
    "format",
    "year",
    "publisher",
]

# Stock reported for "in stock" units that do not manage a quantity.
UNMANAGED_STOCK = 999

Row = List[Any]


def format_price(price: Any) -> str:
    """
    Two decimals with '.' whatever the locale. Raises DataError(no_price) for
    empty, unparseable or non-positive prices.
    """
    text = "" if price is None else str(price).strip()
    if not text:
        raise DataError(SKIP_NO_PRICE, "price is empty")
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise DataError(SKIP_NO_PRICE, f"price {text!r} is not a number")
    if not value.is_finite() or value <= 0:
        raise DataError(SKIP_NO_PRICE, f"price {text!r} is not positive")
    return str(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def resolve_stock(unit: Product) -> int:
    if unit.stock_quantity is None:
        return UNMANAGED_STOCK if unit.in_stock else 0
    try:
        return max(0, int(unit.stock_quantity))
    except (TypeError, ValueError):
        return UNMANAGED_STOCK if unit.in_stock else 0


def _build(unit: Product, settings: ExportSettings, parent: Optional[Product]) -> Row:
    price = format_price(unit.price)

    gtin = fields.resolve_gtin(unit, parent)
    if settings.require_gtin and not gtin:
        raise DataError(SKIP_NO_GTIN, "no GTIN in meta and SKU is not GTIN-shaped")

    images = fields.resolve_images(unit, parent)
    gallery = images["gallery"] + [""] * (fields.MAX_GALLERY_IMAGES - len(images["gallery"]))
    categories = fields.resolve_categories(unit, parent)
    brand = fields.resolve_brand(unit, parent) or settings.default_brand

    return [
        gtin,
        fields.resolve_title(unit, parent),
        settings.country,
        settings.condition,
        price,
        settings.tax_rate,
        settings.currency,
        settings.delivery_days,
        resolve_stock(unit),
        settings.return_days,
        images["main"],
        brand,
        categories["primary"],
        "",  # google_category
        categories["seller"],
        fields.resolve_description(unit, parent),
        to_millimeters(unit.length, unit.dimension_unit),
        to_millimeters(unit.width, unit.dimension_unit),
        to_millimeters(unit.height, unit.dimension_unit),
        to_grams(unit.weight, unit.weight_unit),
        "",  # shipping_length_mm
        "",  # shipping_width_mm
        "",  # shipping_height_mm
        "",  # shipping_weight_g
        "",  # volume_ml
        fields.resolve_size(unit, parent),
        fields.resolve_colour(unit, parent),
        gallery[0],
        gallery[1],
        gallery[2],
        gallery[3],
        "",  # delete_product
        "",  # author
        settings.language,
        "",  # format
        "",  # year
        "",  # publisher
    ]


def build_row(
    unit: Product,
    settings: ExportSettings,
    parent: Optional[Product] = None,
) -> Union[Row, Skip]:
    """
    Build the feed row for one sellable unit (simple product or variation).

    Price is checked before GTIN, so a unit without a usable price is always
    reported as no_price.
    """
    try:
        return _build(unit, settings, parent)
    except DataError as exc:
        logger.debug("Skipping product id=%s (%s): %s", unit.product_id, exc.reason, exc)
        return Skip(reason=exc.reason, detail=str(exc))
