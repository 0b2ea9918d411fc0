"""
erp/sales/stock.py
------------------
Stock availability for the cart.

Two checks exist and they intentionally do not agree:

* available_stock()       advisory, used before adding to the cart.
                          A warehouse-scoped override on the product wins.
* check_submission_stock() authoritative, run when the sale is submitted.
                          Uses variation stock, else product stock; the
                          warehouse override is not consulted.

CartStore mutations enforce neither.
"""
import logging
from typing import Iterable

from erp.sales.errors import StockError
from erp.sales.identity import make_discount_key
from erp.sales.pricing import ResolvedLineItem

logger = logging.getLogger(__name__)


def _stock_of(obj) -> int:
    return int(getattr(obj, 'stock', None) or 0)


def available_stock(product, variation_id=None) -> int:
    """Stock a product (or one of its variations) can still be sold from."""
    override = getattr(product, 'warehouse_stock', None)
    if override is not None:
        return int(override or 0)

    product_type = getattr(product, 'type', 'simple')
    if product_type == 'variation' and variation_id is not None:
        for variation in getattr(product, 'variations', None) or []:
            if str(variation.id) == str(variation_id):
                return _stock_of(variation)
        return 0
    if product_type == 'simple':
        return _stock_of(product)
    return 0


def quantity_in_cart(cart, product_id, variation_id=None) -> int:
    """Units of this product/variation already in the cart, across all packaging."""
    target = make_discount_key(product_id, variation_id)
    return sum(item.quantity for item in cart.items if item.key.discount_key == target)


def can_add(cart, product, variation_id=None) -> bool:
    """True if one more unit of this product/variation fits in available stock."""
    in_cart = quantity_in_cart(cart, product.id, variation_id)
    return in_cart + 1 <= available_stock(product, variation_id)


def submission_stock(line: ResolvedLineItem) -> int:
    if line.variation is not None:
        return _stock_of(line.variation)
    return _stock_of(line.product)


def check_submission_stock(lines: Iterable[ResolvedLineItem]) -> None:
    """Raise StockError for the first line whose quantity exceeds its stock."""
    for line in lines:
        available = submission_stock(line)
        if line.quantity > available:
            name = line.display_name
            logger.warning(f"Stock check failed for {name}: requested {line.quantity}, available {available}")
            raise StockError(
                f"Insufficient stock for {name}. Available: {available}",
                item_name=name,
                available=available,
            )
