"""
erp/catalog/provider.py
-----------------------
Loads the catalog the cart is priced against.

When a warehouse is selected each product gets a `warehouse_stock`
attribute: the sum of that warehouse's stock rows for the product
(0 when it holds none). The stock gate prefers it over nominal stock.
"""
from typing import List, NamedTuple, Optional

from sqlalchemy import func

from erp import db
from erp.catalog.models import Customer, Packaging, Product, Warehouse, WarehouseStock


class Catalog(NamedTuple):
    products:  List[Product]
    packaging: List[Packaging]


def warehouse_totals(warehouse_id) -> dict:
    """{product_id: units held in this warehouse}"""
    rows = (
        db.session.query(WarehouseStock.product_id, func.sum(WarehouseStock.quantity))
        .filter(WarehouseStock.warehouse_id == int(warehouse_id))
        .group_by(WarehouseStock.product_id)
        .all()
    )
    return {product_id: int(total or 0) for product_id, total in rows}


def load_catalog(warehouse_id: Optional[str] = None) -> Catalog:
    products  = Product.query.filter_by(status='active').order_by(Product.name).all()
    packaging = Packaging.query.filter_by(status='active').order_by(Packaging.title).all()

    if warehouse_id:
        held = warehouse_totals(warehouse_id)
        for product in products:
            product.warehouse_stock = held.get(product.id, 0)
    else:
        for product in products:
            product.warehouse_stock = None

    return Catalog(products, packaging)


def load_parties():
    """Customers and warehouses, for the sale's denormalised names."""
    return Customer.query.all(), Warehouse.query.filter_by(status='active').all()
