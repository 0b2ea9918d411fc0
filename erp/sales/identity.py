"""
erp/sales/identity.py
---------------------
Composite identity of a cart line.

A line is identified by (product, packaging, variation, packaging variation).
All four parts take part in equality; an absent variation (None) is a
different line from any present variation of the same product.
"""
from typing import NamedTuple, Optional


class DiscountKey(NamedTuple):
    """The narrower (product, variation) pair that line discounts are matched on."""
    product_id:   str
    variation_id: Optional[str] = None


class LineKey(NamedTuple):
    product_id:             str
    packaging_id:           str
    variation_id:           Optional[str] = None
    packaging_variation_id: Optional[str] = None

    @classmethod
    def of(cls, item) -> 'LineKey':
        """Build the key from a LineItem, a resolved line, or a plain dict."""
        if isinstance(item, dict):
            get = item.get
        else:
            def get(name):
                return getattr(item, name, None)
        return cls(
            product_id=_norm(get('product_id')),
            packaging_id=_norm(get('packaging_id')),
            variation_id=_norm(get('variation_id')),
            packaging_variation_id=_norm(get('packaging_variation_id')),
        )

    @property
    def discount_key(self) -> DiscountKey:
        return DiscountKey(self.product_id, self.variation_id)


def _norm(value) -> Optional[str]:
    """Ids arrive as ints from the DB and strings from forms/JSON; compare as strings."""
    if value is None or value == '':
        return None
    return str(value)


def make_key(product_id, packaging_id, variation_id=None, packaging_variation_id=None) -> LineKey:
    return LineKey(_norm(product_id), _norm(packaging_id),
                   _norm(variation_id), _norm(packaging_variation_id))


def make_discount_key(product_id, variation_id=None) -> DiscountKey:
    return DiscountKey(_norm(product_id), _norm(variation_id))
