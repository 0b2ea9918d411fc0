"""
erp/sales/pricing.py
--------------------
Pure-Python pricing of the cart.

Every read re-derives the priced lines and the cart totals from the cart
state and the current catalog; nothing is cached or stored.

Per line:
    unit_price      = 0 if free gift else (variation price or product price or 0)
    original_total  = unit_price × quantity
    discount_amount = original_total × discount / 100   (percentage)
                    = discount                          (fixed)
    total           = original_total − discount_amount  (may go negative)

Cart:
    subtotal              = Σ total
    total_discount_amount = subtotal × total_discount / 100  |  total_discount
    after_discount        = subtotal − total_discount_amount
    tax_amount            = after_discount × tax_rate / 100
    grand_total           = after_discount + tax_amount

All arithmetic is Decimal with no intermediate rounding; round for
display only with `money()`.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Union

from erp.sales.cart import CartStore, DiscountType, LineItem, to_decimal


Q = Decimal('0.01')   # display quantize target


def money(value) -> Decimal:
    """Round to 2 places for display."""
    return to_decimal(value).quantize(Q, rounding=ROUND_HALF_UP)


@dataclass
class ResolvedLineItem:
    """A line item joined with live catalog data and its computed amounts."""
    item:                LineItem
    product:             object
    packaging:           object
    variation:           Optional[object] = None
    packaging_variation: Optional[object] = None
    unit_price:          Decimal = Decimal('0')
    original_total:      Decimal = Decimal('0')
    discount_amount:     Decimal = Decimal('0')
    total:               Decimal = Decimal('0')

    # LineItem passthroughs so a resolved line can be keyed and displayed directly
    @property
    def product_id(self):
        return self.item.product_id

    @property
    def variation_id(self):
        return self.item.variation_id

    @property
    def packaging_id(self):
        return self.item.packaging_id

    @property
    def packaging_variation_id(self):
        return self.item.packaging_variation_id

    @property
    def quantity(self) -> int:
        return self.item.quantity

    @property
    def is_free_gift(self) -> bool:
        return self.item.is_free_gift

    @property
    def buying_price(self) -> Decimal:
        source = self.variation if self.variation is not None else self.product
        return to_decimal(getattr(source, 'buying_price', None))

    @property
    def display_name(self) -> str:
        if self.variation is not None:
            return f"{self.product.name} ({self.variation.sku})"
        return self.product.name

    def to_dict(self) -> dict:
        return {
            **self.item.to_dict(),
            'name':            self.display_name,
            'packaging_name':  self.packaging.title,
            'unit_price':      str(self.unit_price),
            'original_total':  str(self.original_total),
            'discount_amount': str(self.discount_amount),
            'total':           str(self.total),
        }


@dataclass(frozen=True)
class MissingReference:
    """A line whose product or packaging is not in the supplied catalog."""
    item:   LineItem
    reason: str   # 'product' | 'packaging'


PricedEntry = Union[ResolvedLineItem, MissingReference]


@dataclass
class CartTotals:
    subtotal:              Decimal = Decimal('0')
    total_discount_amount: Decimal = Decimal('0')
    after_discount:        Decimal = Decimal('0')
    tax_amount:            Decimal = Decimal('0')
    grand_total:           Decimal = Decimal('0')

    def to_dict(self) -> dict:
        return {
            'subtotal':              str(money(self.subtotal)),
            'total_discount_amount': str(money(self.total_discount_amount)),
            'after_discount':        str(money(self.after_discount)),
            'tax_amount':            str(money(self.tax_amount)),
            'grand_total':           str(money(self.grand_total)),
        }


@dataclass
class PricedCart:
    entries: List[PricedEntry] = field(default_factory=list)
    totals:  CartTotals = field(default_factory=CartTotals)

    @property
    def items(self) -> List[ResolvedLineItem]:
        return resolved_only(self.entries)

    @property
    def missing(self) -> List[MissingReference]:
        return [e for e in self.entries if isinstance(e, MissingReference)]


# ── Catalog lookups ───────────────────────────────────────────────

def _find_by_id(rows: Iterable, wanted) -> Optional[object]:
    if wanted is None:
        return None
    for row in rows or []:
        if str(row.id) == str(wanted):
            return row
    return None


# ── Line pricing ──────────────────────────────────────────────────

def price_line(item: LineItem, product, packaging, variation=None,
               packaging_variation=None) -> ResolvedLineItem:
    if item.is_free_gift:
        unit_price = Decimal('0')
    elif variation is not None:
        unit_price = to_decimal(variation.price)
    else:
        unit_price = to_decimal(getattr(product, 'price', None))

    original_total = unit_price * Decimal(item.quantity)

    if item.discount_type == DiscountType.PERCENTAGE:
        discount_amount = original_total * item.discount / Decimal('100')
    else:
        discount_amount = item.discount

    return ResolvedLineItem(
        item=item,
        product=product,
        packaging=packaging,
        variation=variation,
        packaging_variation=packaging_variation,
        unit_price=unit_price,
        original_total=original_total,
        discount_amount=discount_amount,
        total=original_total - discount_amount,
    )


def resolve_items(items: Iterable[LineItem], products: Iterable,
                  packaging: Iterable) -> List[PricedEntry]:
    """
    Join each line with the catalog and price it.
    Lines whose product or packaging cannot be found come back as
    MissingReference instead of being priced.
    """
    products  = list(products or [])
    packaging = list(packaging or [])
    entries: List[PricedEntry] = []

    for item in items:
        product = _find_by_id(products, item.product_id)
        if product is None:
            entries.append(MissingReference(item, 'product'))
            continue

        found_packaging = _find_by_id(packaging, item.packaging_id)
        if found_packaging is None:
            entries.append(MissingReference(item, 'packaging'))
            continue

        variation = _find_by_id(getattr(product, 'variations', None), item.variation_id)
        packaging_variation = _find_by_id(getattr(found_packaging, 'variations', None),
                                          item.packaging_variation_id)

        entries.append(price_line(item, product, found_packaging, variation, packaging_variation))

    return entries


def resolved_only(entries: Iterable[PricedEntry]) -> List[ResolvedLineItem]:
    """The priced lines, dropping any MissingReference."""
    return [e for e in entries if isinstance(e, ResolvedLineItem)]


# ── Cart totals ───────────────────────────────────────────────────

def compute_totals(resolved: Iterable[ResolvedLineItem], total_discount=0,
                   total_discount_type=DiscountType.PERCENTAGE, tax_rate=0) -> CartTotals:
    total_discount = to_decimal(total_discount)
    tax_rate       = to_decimal(tax_rate)

    subtotal = sum((line.total for line in resolved), start=Decimal('0'))

    if DiscountType(total_discount_type) == DiscountType.PERCENTAGE:
        total_discount_amount = subtotal * total_discount / Decimal('100')
    else:
        total_discount_amount = total_discount

    after_discount = subtotal - total_discount_amount
    tax_amount     = after_discount * tax_rate / Decimal('100')

    return CartTotals(
        subtotal=subtotal,
        total_discount_amount=total_discount_amount,
        after_discount=after_discount,
        tax_amount=tax_amount,
        grand_total=after_discount + tax_amount,
    )


def price_cart(cart: CartStore, products: Iterable, packaging: Iterable) -> PricedCart:
    """Resolve and total the whole cart in one call."""
    entries = resolve_items(cart.items, products, packaging)
    totals  = compute_totals(resolved_only(entries), cart.total_discount,
                             cart.total_discount_type, cart.tax_rate)
    return PricedCart(entries=entries, totals=totals)
