"""
erp/sales/cart.py
-----------------
The point-of-sale cart: an ordered list of line items plus the cart-wide
discount and tax settings.

Cart structure stored in the Flask session under key 'cart':
{
    "items": [
        {
            "product_id":             str,
            "packaging_id":           str,
            "variation_id":           str | None,
            "packaging_variation_id": str | None,
            "quantity":               int,
            "discount":               str,   ← stored as string to survive JSON serialisation
            "discount_type":          "percentage" | "fixed",
            "is_free_gift":           bool
        },
        ...
    ],
    "total_discount":      str,
    "total_discount_type": "percentage" | "fixed",
    "tax_rate":            str
}

Mutations never fail: an unknown key or an unparseable value is a no-op
(logged at WARNING). Stock is not enforced here; see erp.sales.stock.
"""
import enum
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from erp.sales.identity import LineKey, make_discount_key, make_key

logger = logging.getLogger(__name__)

CART_KEY = 'cart'


class DiscountType(str, enum.Enum):
    PERCENTAGE = 'percentage'
    FIXED      = 'fixed'


def to_decimal(value) -> Decimal:
    """Numbers and numeric strings → Decimal (via str to avoid float artefacts)."""
    if isinstance(value, Decimal):
        return value
    if value is None or value == '':
        return Decimal('0')
    return Decimal(str(value))


def parse_amount(value) -> Optional[Decimal]:
    """Decimal for a finite numeric input, None for anything else."""
    try:
        amount = to_decimal(value)
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


def parse_discount_type(value) -> Optional[DiscountType]:
    try:
        return DiscountType(value)
    except ValueError:
        return None


def parse_quantity(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class LineItem:
    product_id:             str
    packaging_id:           str
    variation_id:           Optional[str] = None
    packaging_variation_id: Optional[str] = None
    quantity:               int = 1
    discount:               Decimal = Decimal('0')
    discount_type:          DiscountType = DiscountType.PERCENTAGE
    is_free_gift:           bool = False

    @property
    def key(self) -> LineKey:
        return LineKey.of(self)

    def to_dict(self) -> dict:
        return {
            'product_id':             self.product_id,
            'packaging_id':           self.packaging_id,
            'variation_id':           self.variation_id,
            'packaging_variation_id': self.packaging_variation_id,
            'quantity':               self.quantity,
            'discount':               str(self.discount),
            'discount_type':          self.discount_type.value,
            'is_free_gift':           self.is_free_gift,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'LineItem':
        key = LineKey.of(data)
        return cls(
            product_id=key.product_id,
            packaging_id=key.packaging_id,
            variation_id=key.variation_id,
            packaging_variation_id=key.packaging_variation_id,
            quantity=int(data.get('quantity', 1)),
            discount=to_decimal(data.get('discount')),
            discount_type=DiscountType(data.get('discount_type', DiscountType.PERCENTAGE.value)),
            is_free_gift=bool(data.get('is_free_gift', False)),
        )


class CartStore:
    """Holds the line items and the cart-wide discount/tax configuration."""

    def __init__(self, items: Optional[List[LineItem]] = None):
        self.items: List[LineItem] = list(items or [])
        self.total_discount      = Decimal('0')
        self.total_discount_type = DiscountType.PERCENTAGE
        self.tax_rate            = Decimal('0')

    # ── Read ──────────────────────────────────────────────────────

    def find(self, key: LineKey) -> Optional[LineItem]:
        for item in self.items:
            if item.key == key:
                return item
        return None

    @property
    def is_empty(self) -> bool:
        return len(self.items) == 0

    @property
    def total_items(self) -> int:
        """Sum of quantities across all lines."""
        return sum(item.quantity for item in self.items)

    def __len__(self):
        return len(self.items)

    # ── Write ─────────────────────────────────────────────────────

    def add(self, product_id, packaging_id, variation_id=None, packaging_variation_id=None) -> None:
        """
        Add one unit of the line identified by the four-part key.
        If already present, increments its quantity by 1.
        """
        key = make_key(product_id, packaging_id, variation_id, packaging_variation_id)
        existing = self.find(key)
        if existing is not None:
            self.update_quantity(key, existing.quantity + 1)
            return

        self.items.append(LineItem(
            product_id=key.product_id,
            packaging_id=key.packaging_id,
            variation_id=key.variation_id,
            packaging_variation_id=key.packaging_variation_id,
        ))

    def update_quantity(self, key: LineKey, quantity: int) -> None:
        """quantity <= 0 removes the line; otherwise sets it."""
        parsed = parse_quantity(quantity)
        if parsed is None:
            logger.warning(f"Ignoring non-integer quantity {quantity!r} for {key}")
            return
        if parsed <= 0:
            self.remove(key)
            return
        for item in self.items:
            if item.key == key:
                item.quantity = parsed

    def remove(self, key: LineKey) -> None:
        self.items = [item for item in self.items if item.key != key]

    def update_discount(self, product_id, discount, variation_id=None) -> None:
        """
        Set the line discount on every line of this product/variation,
        whatever its packaging.
        """
        amount = parse_amount(discount)
        if amount is None:
            logger.warning(f"Ignoring invalid discount {discount!r} for product {product_id}")
            return
        target = make_discount_key(product_id, variation_id)
        for item in self.items:
            if item.key.discount_key == target:
                item.discount = amount

    def update_discount_type(self, product_id, discount_type, variation_id=None) -> None:
        parsed = parse_discount_type(discount_type)
        if parsed is None:
            logger.warning(f"Ignoring unknown discount type {discount_type!r} for product {product_id}")
            return
        target = make_discount_key(product_id, variation_id)
        for item in self.items:
            if item.key.discount_key == target:
                item.discount_type = parsed

    def toggle_free_gift(self, key: LineKey) -> None:
        """Free gift and line discount are exclusive: toggling always zeroes the discount."""
        for item in self.items:
            if item.key == key:
                item.is_free_gift = not item.is_free_gift
                item.discount = Decimal('0')

    def set_total_discount(self, discount) -> None:
        amount = parse_amount(discount)
        if amount is None:
            logger.warning(f"Ignoring invalid cart discount {discount!r}")
            return
        self.total_discount = amount

    def set_total_discount_type(self, discount_type) -> None:
        parsed = parse_discount_type(discount_type)
        if parsed is None:
            logger.warning(f"Ignoring unknown cart discount type {discount_type!r}")
            return
        self.total_discount_type = parsed

    def set_tax_rate(self, rate) -> None:
        amount = parse_amount(rate)
        if amount is None:
            logger.warning(f"Ignoring invalid tax rate {rate!r}")
            return
        self.tax_rate = amount

    def clear(self) -> None:
        """Empty the cart and reset the cart-wide discount and tax."""
        self.items = []
        self.total_discount      = Decimal('0')
        self.total_discount_type = DiscountType.PERCENTAGE
        self.tax_rate            = Decimal('0')

    # ── Serialisation ─────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {
            'items':               [item.to_dict() for item in self.items],
            'total_discount':      str(self.total_discount),
            'total_discount_type': self.total_discount_type.value,
            'tax_rate':            str(self.tax_rate),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'CartStore':
        data = data or {}
        store = cls([LineItem.from_dict(d) for d in data.get('items', [])])
        store.total_discount = to_decimal(data.get('total_discount'))
        store.total_discount_type = DiscountType(
            data.get('total_discount_type', DiscountType.PERCENTAGE.value))
        store.tax_rate = to_decimal(data.get('tax_rate'))
        return store


# ── Session helpers ───────────────────────────────────────────────

def get_cart() -> CartStore:
    """Load the cart from the Flask session (empty store if none)."""
    from flask import session
    return CartStore.from_dict(session.get(CART_KEY))


def save_cart(cart: CartStore) -> None:
    from flask import session
    session[CART_KEY] = cart.to_dict()
    session.modified = True


def clear_cart() -> None:
    """Drop the cart after a completed sale."""
    from flask import session
    session.pop(CART_KEY, None)
    session.modified = True
