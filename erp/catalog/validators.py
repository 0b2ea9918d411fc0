"""
erp/catalog/validators.py
-------------------------
Pure-Python validation for product variation form data.
Returns a dict of field -> error_message.
An empty dict means all fields are valid.
"""
import json
from decimal import Decimal, InvalidOperation

from erp.sales.errors import DuplicateCombinationError


def _combination(values: dict) -> str:
    """Canonical form of an attribute combination, independent of key order."""
    return json.dumps({str(k): str(v) for k, v in (values or {}).items()}, sort_keys=True)


def _attribute_values(variation) -> dict:
    if isinstance(variation, dict):
        return variation.get('attribute_values') or {}
    return getattr(variation, 'attribute_values', None) or {}


def _sku(variation) -> str:
    if isinstance(variation, dict):
        return variation.get('sku') or ''
    return getattr(variation, 'sku', None) or ''


def find_duplicate(form_data: dict, existing: list, exclude_index: int = -1):
    """
    Return (field, message) for the first clash with another variation,
    checking the attribute combination before the SKU; None if unique.
    """
    current = _combination(form_data.get('attribute_values') or {})
    for index, variation in enumerate(existing or []):
        if index == exclude_index:
            continue
        if _combination(_attribute_values(variation)) == current:
            return 'attribute_values', 'This attribute combination already exists'

    sku = (form_data.get('sku') or '').strip().lower()
    if sku:
        for index, variation in enumerate(existing or []):
            if index == exclude_index:
                continue
            if _sku(variation).lower() == sku:
                return 'sku', 'This SKU already exists in another variation'
    return None


def validate_variation_form(form_data: dict, attribute_ids: list,
                            existing: list = None, exclude_index: int = -1) -> dict:
    """
    Validate one variation of a variation product.

    Args:
        form_data:     {'sku': str, 'price': str, 'attribute_values': {attribute_id: value_id}}
        attribute_ids: attributes the product varies on; each must be chosen
        existing:      the product's other variations (models or dicts)
        exclude_index: position in `existing` being edited, skipped by the
                       duplicate checks

    Returns:
        dict of {field_name: error_message} — empty if all valid.
    """
    errors = {}

    # ── sku ───────────────────────────────────────────────────────
    sku = (form_data.get('sku') or '').strip()
    if not sku:
        errors['sku'] = 'SKU is required'

    # ── price ─────────────────────────────────────────────────────
    price_raw = str(form_data.get('price', '0')).strip()
    try:
        if Decimal(price_raw or '0') < 0:
            errors['price'] = 'Price cannot be negative.'
    except InvalidOperation:
        errors['price'] = 'Price must be a valid number.'

    # ── buying price ──────────────────────────────────────────────
    buying_raw = str(form_data.get('buying_price') or '0').strip()
    try:
        if Decimal(buying_raw) < 0:
            errors['buying_price'] = 'Buying price cannot be negative.'
    except InvalidOperation:
        errors['buying_price'] = 'Buying price must be a valid number.'

    # ── stock ─────────────────────────────────────────────────────
    try:
        if int(str(form_data.get('stock') or '0').strip()) < 0:
            errors['stock'] = 'Stock cannot be negative.'
    except ValueError:
        errors['stock'] = 'Stock must be a whole number.'

    # ── attribute values ──────────────────────────────────────────
    values = form_data.get('attribute_values') or {}
    if any(not values.get(str(a)) for a in attribute_ids):
        errors['attribute_values'] = 'All attributes must be selected'
        return errors

    # ── duplicates ────────────────────────────────────────────────
    clash = find_duplicate(form_data, existing, exclude_index)
    if clash:
        field, message = clash
        errors[field] = message

    return errors


def ensure_unique_variation(form_data: dict, existing: list, exclude_index: int = -1) -> None:
    """Raise DuplicateCombinationError if the combination or SKU is already taken."""
    clash = find_duplicate(form_data, existing, exclude_index)
    if clash:
        raise DuplicateCombinationError(clash[1])


def suggest_sku(base_sku: str, attribute_values: dict, attributes: list) -> str:
    """
    Build a SKU suggestion like 'SHIRT-RED-L' from the chosen attribute values.

    `attributes` is a list of {'id', 'values': [{'id', 'label'}]}.
    """
    if not base_sku:
        return ''

    parts = []
    for attribute_id, value_id in attribute_values.items():
        attribute = next((a for a in attributes if str(a['id']) == str(attribute_id)), None)
        if attribute is None:
            continue
        value = next((v for v in attribute.get('values', []) if str(v['id']) == str(value_id)), None)
        if value is not None:
            parts.append(str(value.get('label') or value.get('value', '')).upper().replace(' ', '-'))

    return '-'.join([base_sku] + [p for p in parts if p])
