"""
WooCommerce REST API connectivity check.
Reads the store URL and API keys from the environment (or prompts) and
fetches the first page of published products plus the store's units.
"""

import os
import sys

import requests


def read_value(env_name: str, prompt: str) -> str:
    value = os.getenv(env_name)
    if value:
        return value.strip()
    return input(prompt).strip()


def main() -> int:
    store_url = read_value("WOOCOMMERCE_URL", "Store URL (https://...): ").rstrip("/")
    key = read_value("WOOCOMMERCE_KEY", "Consumer key: ")
    secret = read_value("WOOCOMMERCE_SECRET", "Consumer secret: ")
    if not (store_url and key and secret):
        print("Store URL, consumer key and consumer secret are required.", file=sys.stderr)
        return 1

    base = f"{store_url}/wp-json/wc/v3"
    print(f"Testing: {base}/products")
    try:
        resp = requests.get(
            f"{base}/products",
            params={"status": "publish", "per_page": 5},
            auth=(key, secret),
            timeout=20,
        )
        if resp.status_code != 200:
            print(f"Request failed. Status: {resp.status_code}", file=sys.stderr)
            try:
                print(resp.json(), file=sys.stderr)
            except Exception:
                print(resp.text, file=sys.stderr)
            return 1

        products = resp.json()
        print(f"Total published products: {resp.headers.get('X-WP-Total', '?')}")
        for product in products:
            print(f"  #{product.get('id')} [{product.get('type')}] {product.get('name')} price={product.get('price')!r}")

        for option in ("woocommerce_dimension_unit", "woocommerce_weight_unit"):
            unit = requests.get(f"{base}/settings/products/{option}", auth=(key, secret), timeout=20)
            if unit.status_code == 200:
                print(f"{option}: {unit.json().get('value')}")
            else:
                print(f"{option}: unavailable (HTTP {unit.status_code})")
    except requests.RequestException as exc:
        print(f"Request error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
