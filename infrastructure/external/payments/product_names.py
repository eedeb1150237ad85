"""
Best-effort display name for an order's product.

Every adapter feeds its own field names into ``extract_product_name``; the
fallback order and composition are shared so reporting sees one format:

1. explicit product name
2. explicit variant name
3. first line item's product name
4. first line item's variant name
5. free-text description

Equal product and variant names collapse to the product name; differing
ones compose as ``"{product} - {variant}"``. Nothing resolvable yields
``"Unknown Product"``.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from application.dtos.payments import UNKNOWN_PRODUCT


def clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def first_text(*values: Any) -> Optional[str]:
    for value in values:
        text = clean_text(value)
        if text:
            return text
    return None


def compose_product_name(product: Optional[str], variant: Optional[str]) -> Optional[str]:
    product = clean_text(product)
    variant = clean_text(variant)
    if product and variant:
        return product if product == variant else f"{product} - {variant}"
    return product or variant


def extract_product_name(
    *,
    product_name: Any = None,
    variant_name: Any = None,
    item_product_name: Any = None,
    item_variant_name: Any = None,
    description: Any = None,
) -> str:
    product = first_text(product_name, item_product_name)
    variant = first_text(variant_name, item_variant_name)
    return compose_product_name(product, variant) or clean_text(description) or UNKNOWN_PRODUCT


def dig(payload: Any, *path: Any) -> Any:
    """Walk nested mappings/sequences; any missing hop yields None."""
    current = payload
    for key in path:
        if current is None:
            return None
        if isinstance(key, int):
            if not isinstance(current, Sequence) or isinstance(current, (str, bytes)) or len(current) <= key:
                return None
            current = current[key]
        elif isinstance(current, Mapping):
            current = current.get(key)
        else:
            return None
    return current
