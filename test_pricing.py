"""
test_pricing.py — Tests for line pricing and cart totals.
Run: pytest test_pricing.py -v
"""
from decimal import Decimal
from types import SimpleNamespace

import pytest

from erp.sales.cart import CartStore
from erp.sales.identity import make_key
from erp.sales.pricing import (
    MissingReference, ResolvedLineItem, compute_totals, money, price_cart,
)


def product(pid, price, stock=100, variations=None, buying_price=None, type='simple'):
    return SimpleNamespace(id=pid, name=f'Product {pid}', price=price, stock=stock,
                           buying_price=buying_price, type=type, variations=variations or [],
                           warehouse_stock=None)


def variation(vid, price, stock=10, sku=None, buying_price=None):
    return SimpleNamespace(id=vid, sku=sku or f'SKU-{vid}', price=price, stock=stock,
                           buying_price=buying_price)


def packaging(pkid, title='Box', variations=None):
    return SimpleNamespace(id=pkid, title=title, variations=variations or [])


@pytest.fixture
def catalog():
    return {
        'products': [
            product(1, Decimal('100')),
            product(2, Decimal('50')),
            product(3, Decimal('20')),
            product(4, None, type='variation',
                     variations=[variation(40, Decimal('80')), variation(41, Decimal('90'))]),
        ],
        'packaging': [packaging(9), packaging(8, 'Bag', [SimpleNamespace(id=80, sku='BAG-S')])],
    }


def priced(cart, catalog):
    return price_cart(cart, catalog['products'], catalog['packaging'])


# ── 1. Line arithmetic ────────────────────────────────────────────

def test_percentage_line_discount(catalog):
    cart = CartStore()
    cart.add(1, 9)
    cart.update_quantity(make_key(1, 9), 3)
    cart.update_discount(1, 10)

    result = priced(cart, catalog)
    line = result.items[0]
    assert line.original_total == Decimal('300')
    assert line.discount_amount == Decimal('30')
    assert line.total == Decimal('270')
    assert result.totals.grand_total == Decimal('270')


def test_fixed_line_discount(catalog):
    cart = CartStore()
    cart.add(2, 9)
    cart.update_discount_type(2, 'fixed')
    cart.update_discount(2, '12.50')
    line = priced(cart, catalog).items[0]
    assert line.discount_amount == Decimal('12.50')
    assert line.total == Decimal('37.50')


def test_oversized_discount_goes_negative(catalog):
    cart = CartStore()
    cart.add(3, 9)
    cart.update_discount_type(3, 'fixed')
    cart.update_discount(3, 50)
    result = priced(cart, catalog)
    assert result.items[0].total == Decimal('-30')
    assert result.totals.subtotal == Decimal('-30')


def test_variation_price_wins(catalog):
    cart = CartStore()
    cart.add(4, 9, variation_id=41)
    line = priced(cart, catalog).items[0]
    assert line.unit_price == Decimal('90')
    assert line.display_name == 'Product 4 (SKU-41)'


def test_missing_product_price_prices_at_zero(catalog):
    cart = CartStore()
    cart.add(4, 9)   # variation product without a variation chosen
    line = priced(cart, catalog).items[0]
    assert line.unit_price == Decimal('0')
    assert line.total == Decimal('0')


def test_free_gift_prices_at_zero_and_clears_discount(catalog):
    cart = CartStore()
    cart.add(1, 9)
    cart.update_discount(1, 40)
    cart.toggle_free_gift(make_key(1, 9))
    line = priced(cart, catalog).items[0]
    assert line.unit_price == Decimal('0')
    assert line.item.discount == Decimal('0')
    assert line.total == Decimal('0')


def test_packaging_variation_resolved(catalog):
    cart = CartStore()
    cart.add(1, 8, packaging_variation_id=80)
    line = priced(cart, catalog).items[0]
    assert line.packaging.title == 'Bag'
    assert line.packaging_variation.sku == 'BAG-S'


# ── 2. Cart totals ────────────────────────────────────────────────

def test_fixed_cart_discount_and_tax(catalog):
    cart = CartStore()
    cart.add(2, 9)
    cart.add(2, 9)
    cart.add(3, 9)
    cart.set_total_discount(10)
    cart.set_total_discount_type('fixed')
    cart.set_tax_rate(5)

    totals = priced(cart, catalog).totals
    assert totals.subtotal == Decimal('120')
    assert totals.total_discount_amount == Decimal('10')
    assert totals.after_discount == Decimal('110')
    assert totals.tax_amount == Decimal('5.5')
    assert totals.grand_total == Decimal('115.5')


def test_percentage_cart_discount(catalog):
    cart = CartStore()
    cart.add(1, 9)
    cart.set_total_discount(25)
    totals = priced(cart, catalog).totals
    assert totals.total_discount_amount == Decimal('25')
    assert totals.grand_total == Decimal('75')


def test_subtotal_is_sum_of_line_totals(catalog):
    cart = CartStore()
    cart.add(1, 9)
    cart.add(2, 8)
    cart.add(4, 9, variation_id=40)
    cart.update_discount(1, 5)
    cart.update_discount_type(2, 'fixed')
    cart.update_discount(2, 3)
    cart.toggle_free_gift(make_key(4, 9, 40))

    result = priced(cart, catalog)
    for line in result.items:
        assert line.total == line.original_total - line.discount_amount
    assert result.totals.subtotal == sum(line.total for line in result.items)


def test_no_intermediate_rounding():
    line = SimpleNamespace(total=Decimal('10.005'))
    totals = compute_totals([line, line], total_discount=0, tax_rate=0)
    assert totals.grand_total == Decimal('20.010')
    assert money(Decimal('10.005')) == Decimal('10.01')


def test_empty_cart_totals_are_zero(catalog):
    totals = priced(CartStore(), catalog).totals
    assert totals.grand_total == Decimal('0')


# ── 3. Missing catalog references ─────────────────────────────────

def test_unknown_product_reported_not_priced(catalog):
    cart = CartStore()
    cart.add(1, 9)
    cart.add(999, 9)
    cart.add(2, 777)

    result = priced(cart, catalog)
    assert len(result.items) == 1
    assert all(isinstance(line, ResolvedLineItem) for line in result.items)
    reasons = sorted(m.reason for m in result.missing)
    assert reasons == ['packaging', 'product']
    assert all(isinstance(m, MissingReference) for m in result.missing)
    assert result.totals.subtotal == Decimal('100')
