from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import requests

from core.models import TYPE_SIMPLE, TYPE_VARIABLE, TYPE_VARIATION, CategoryTerm, Product

logger = logging.getLogger(__name__)

PUBLISHED = "publish"


class WooCommerceClient:
    """Minimal WooCommerce REST API (wc/v3) client for reading the catalog."""

    def __init__(
        self,
        store_url: str,
        consumer_key: str,
        consumer_secret: str,
        session: Optional[requests.Session] = None,
        per_page: int = 100,
        timeout: int = 30,
        calls_per_second: float = 5.0,
    ) -> None:
        self.store_url = store_url.rstrip("/")
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.session = session or requests.Session()
        self.per_page = per_page
        self.timeout = timeout
        self.min_interval = 1.0 / max(1.0, calls_per_second)
        self._last_call_ts = 0.0

    def _sleep_for_rate_limit(self) -> None:
        now = time.time()
        elapsed = now - self._last_call_ts
        if elapsed < self.min_interval:
            time.sleep(self.min_interval - elapsed)
        self._last_call_ts = time.time()

    def _url(self, path: str) -> str:
        return f"{self.store_url}/wp-json/wc/v3/{path.lstrip('/')}"

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        self._sleep_for_rate_limit()
        resp = self.session.get(
            self._url(path),
            params=params or {},
            auth=(self.consumer_key, self.consumer_secret),
            timeout=self.timeout,
        )
        if resp.status_code != 200:
            try:
                details = resp.json()
            except Exception:
                details = resp.text
            raise RuntimeError(f"WooCommerce GET {path} failed: {resp.status_code} {details}")
        return resp

    def _get_all(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Follow X-WP-TotalPages pagination and return every item."""
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            query = dict(params or {})
            query.update({"per_page": self.per_page, "page": page})
            resp = self._get(path, query)
            batch = resp.json() or []
            items.extend(batch)
            try:
                total_pages = int(resp.headers.get("X-WP-TotalPages", "1"))
            except ValueError:
                total_pages = 1
            if page >= total_pages or not batch:
                return items
            page += 1

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._get(path, params).json()

    def list_products(self, status: str = PUBLISHED) -> List[Dict[str, Any]]:
        return self._get_all("products", {"status": status})

    def get_product(self, product_id: int) -> Optional[Dict[str, Any]]:
        try:
            return self.get_json(f"products/{product_id}")
        except RuntimeError as exc:
            logger.warning("Could not fetch product %s: %s", product_id, exc)
            return None

    def list_variations(self, product_id: int) -> List[Dict[str, Any]]:
        return self._get_all(f"products/{product_id}/variations")

    def list_categories(self) -> List[Dict[str, Any]]:
        return self._get_all("products/categories")

    def get_setting(self, group: str, option_id: str) -> Optional[str]:
        try:
            data = self.get_json(f"settings/{group}/{option_id}")
        except RuntimeError as exc:
            logger.warning("Could not read setting %s/%s: %s", group, option_id, exc)
            return None
        return (data or {}).get("value")


def _images(payload: Dict[str, Any]) -> List[str]:
    return [img.get("src") for img in payload.get("images") or [] if img.get("src")]


def _meta(payload: Dict[str, Any]) -> Dict[str, Any]:
    meta = {m.get("key"): m.get("value") for m in payload.get("meta_data") or [] if m.get("key")}
    # wc/v3 exposes the native GTIN field at top level (WooCommerce 9.2+).
    if payload.get("global_unique_id"):
        meta.setdefault("_global_unique_id", payload["global_unique_id"])
    return meta


def _attributes(payload: Dict[str, Any]) -> Dict[str, str]:
    attributes: Dict[str, str] = {}
    for attr in payload.get("attributes") or []:
        name = attr.get("slug") or attr.get("name") or ""
        if not name:
            continue
        if "option" in attr:
            value = attr.get("option") or ""
        else:
            value = ", ".join(o for o in attr.get("options") or [] if o)
        # wc/v3 often omits the slug; the display name is matched case-insensitively.
        attributes[name] = value
    return attributes


class WooCommerceCatalog:
    """Catalog adapter over the WooCommerce REST API."""

    def __init__(self, client: WooCommerceClient) -> None:
        self.client = client
        self._products: Dict[int, Dict[str, Any]] = {}
        self._categories: Optional[Dict[int, Dict[str, Any]]] = None
        self._terms: Dict[int, CategoryTerm] = {}
        self._variations: Dict[int, Dict[int, Dict[str, Any]]] = {}
        self._dimension_unit: Optional[str] = None
        self._weight_unit: Optional[str] = None

    def _units(self) -> None:
        if self._dimension_unit is None:
            self._dimension_unit = (
                self.client.get_setting("products", "woocommerce_dimension_unit") or "cm"
            )
            self._weight_unit = self.client.get_setting("products", "woocommerce_weight_unit") or "kg"

    def _term(self, term_id: int) -> Optional[CategoryTerm]:
        if self._categories is None:
            self._categories = {c["id"]: c for c in self.client.list_categories() if "id" in c}
        if term_id in self._terms:
            return self._terms[term_id]
        raw = self._categories.get(term_id)
        if raw is None:
            return None
        # Register before resolving the parent so a malformed cycle terminates.
        term = CategoryTerm(term_id=term_id, name=raw.get("name") or "")
        self._terms[term_id] = term
        parent_id = raw.get("parent") or 0
        if parent_id:
            term.parent = self._term(parent_id)
        return term

    def _to_product(self, payload: Dict[str, Any], parent_id: Optional[int] = None) -> Product:
        self._units()
        dimensions = payload.get("dimensions") or {}
        images = _images(payload)
        if parent_id is not None:
            image = payload.get("image") or {}
            images = [image["src"]] if image.get("src") else []
        categories = [
            t for t in (self._term(c.get("id")) for c in payload.get("categories") or []) if t
        ]
        brands = [b.get("name") for b in payload.get("brands") or [] if b.get("name")]
        return Product(
            product_id=int(payload["id"]),
            name=payload.get("name") or "",
            product_type=TYPE_VARIATION if parent_id is not None else payload.get("type", TYPE_SIMPLE),
            price=payload.get("price") or None,
            stock_quantity=payload.get("stock_quantity"),
            in_stock=payload.get("stock_status", "instock") != "outofstock",
            length=dimensions.get("length") or None,
            width=dimensions.get("width") or None,
            height=dimensions.get("height") or None,
            dimension_unit=self._dimension_unit or "cm",
            weight=payload.get("weight") or None,
            weight_unit=self._weight_unit or "kg",
            image=images[0] if images else None,
            gallery=images[1:],
            description=payload.get("description") or "",
            short_description=payload.get("short_description") or "",
            meta=_meta(payload),
            categories=categories,
            taxonomies={"product_brand": brands} if brands else {},
            attributes=_attributes(payload),
            sku=payload.get("sku") or "",
            parent_id=parent_id,
            variation_ids=list(payload.get("variations") or []),
        )

    def list_product_ids(self) -> List[int]:
        self._products = {
            p["id"]: p
            for p in self.client.list_products(status=PUBLISHED)
            if p.get("type") in (TYPE_SIMPLE, TYPE_VARIABLE)
        }
        logger.info("WooCommerce catalog lists %d published products", len(self._products))
        return list(self._products)

    def get_product(self, product_id: int) -> Optional[Product]:
        payload = self._products.pop(product_id, None) or self.client.get_product(product_id)
        if not payload:
            return None
        return self._to_product(payload)

    def list_variation_ids(self, product: Product) -> List[int]:
        variations = {
            v["id"]: v
            for v in self.client.list_variations(product.product_id)
            if v.get("status", PUBLISHED) == PUBLISHED
        }
        self._variations[product.product_id] = variations
        return list(variations)

    def get_variation(self, variation_id: int, parent: Product) -> Optional[Product]:
        payload = self._variations.get(parent.product_id, {}).pop(variation_id, None)
        if payload is None:
            try:
                payload = self.client.get_json(
                    f"products/{parent.product_id}/variations/{variation_id}"
                )
            except RuntimeError as exc:
                logger.warning("Could not fetch variation %s: %s", variation_id, exc)
                return None
        return self._to_product(payload, parent_id=parent.product_id)
