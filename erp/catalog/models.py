"""
erp/catalog/models.py
---------------------
Catalog tables read by the sales cart: products (simple or with
variations), packaging (simple or with variations), warehouses with
per-warehouse stock, and customers.
"""
import json
from datetime import datetime

from erp import db


class Product(db.Model):
    """A sellable product. `type` is 'simple' or 'variation'."""
    __tablename__ = 'products'

    id           = db.Column(db.Integer, primary_key=True)
    name         = db.Column(db.String(200), nullable=False, index=True)
    sku          = db.Column(db.String(100), nullable=True, unique=True)
    type         = db.Column(db.String(20), nullable=False, default='simple')
    price        = db.Column(db.Numeric(12, 2), nullable=True)    # simple products only
    buying_price = db.Column(db.Numeric(12, 2), nullable=True)
    stock        = db.Column(db.Integer, nullable=True, default=0)
    status       = db.Column(db.String(20), nullable=False, default='active')
    created_at   = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    variations = db.relationship('ProductVariation', backref='product', lazy='select',
                                 order_by='ProductVariation.id',
                                 cascade='all, delete-orphan')

    # Not a column: set by the catalog provider when a warehouse is selected.
    warehouse_stock = None

    __table_args__ = (
        db.CheckConstraint("type IN ('simple', 'variation')", name='check_product_type'),
        db.CheckConstraint('stock >= 0', name='check_product_stock_non_negative'),
    )

    @property
    def is_variant(self) -> bool:
        return self.type == 'variation'

    def __repr__(self):
        return f"<Product {self.id} {self.name!r} {self.type}>"


class ProductVariation(db.Model):
    """One attribute combination of a variation product, with its own SKU, price and stock."""
    __tablename__ = 'product_variations'

    id               = db.Column(db.Integer, primary_key=True)
    product_id       = db.Column(db.Integer, db.ForeignKey('products.id', ondelete='CASCADE'),
                                 nullable=False, index=True)
    sku              = db.Column(db.String(100), nullable=False)
    price            = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    buying_price     = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    stock            = db.Column(db.Integer, nullable=False, default=0)
    attributes_json  = db.Column(db.Text, nullable=False, default='{}')   # {attribute_id: value_id}

    __table_args__ = (
        db.CheckConstraint('stock >= 0', name='check_variation_stock_non_negative'),
    )

    @property
    def attribute_values(self) -> dict:
        return json.loads(self.attributes_json or '{}')

    @attribute_values.setter
    def attribute_values(self, values: dict) -> None:
        self.attributes_json = json.dumps(values or {}, sort_keys=True)

    def __repr__(self):
        return f"<ProductVariation {self.sku!r} P:{self.product_id} stock:{self.stock}>"


class Packaging(db.Model):
    """A packaging option a line item is sold in. `type` is 'simple' or 'variable'."""
    __tablename__ = 'packaging'

    id           = db.Column(db.Integer, primary_key=True)
    title        = db.Column(db.String(200), nullable=False)
    type         = db.Column(db.String(20), nullable=False, default='simple')
    sku          = db.Column(db.String(100), nullable=True)
    price        = db.Column(db.Numeric(12, 2), nullable=True)
    buying_price = db.Column(db.Numeric(12, 2), nullable=True)
    stock        = db.Column(db.Integer, nullable=True, default=0)
    status       = db.Column(db.String(20), nullable=False, default='active')

    variations = db.relationship('PackagingVariation', backref='packaging', lazy='select',
                                 order_by='PackagingVariation.id',
                                 cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Packaging {self.id} {self.title!r}>"


class PackagingVariation(db.Model):
    __tablename__ = 'packaging_variations'

    id           = db.Column(db.Integer, primary_key=True)
    packaging_id = db.Column(db.Integer, db.ForeignKey('packaging.id', ondelete='CASCADE'),
                             nullable=False, index=True)
    sku          = db.Column(db.String(100), nullable=False)
    price        = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    buying_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    stock        = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<PackagingVariation {self.sku!r} Pk:{self.packaging_id}>"


class Warehouse(db.Model):
    __tablename__ = 'warehouses'

    id       = db.Column(db.Integer, primary_key=True)
    name     = db.Column(db.String(200), nullable=False)
    location = db.Column(db.String(200), nullable=True)
    status   = db.Column(db.String(20), nullable=False, default='active')

    def __repr__(self):
        return f"<Warehouse {self.name!r}>"


class WarehouseStock(db.Model):
    """
    Stock held in one warehouse for a product (optionally one variation).
    The sum of a product's rows for the selected warehouse becomes the
    product's `warehouse_stock` override.
    """
    __tablename__ = 'warehouse_stock'

    id           = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey('warehouses.id'), nullable=False, index=True)
    product_id   = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False, index=True)
    variation_id = db.Column(db.Integer, db.ForeignKey('product_variations.id'), nullable=True)
    quantity     = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.CheckConstraint('quantity >= 0', name='check_warehouse_qty_non_negative'),
        db.UniqueConstraint('warehouse_id', 'product_id', 'variation_id',
                            name='uq_warehouse_product_variation'),
    )

    def __repr__(self):
        return f"<WarehouseStock W:{self.warehouse_id} P:{self.product_id} qty:{self.quantity}>"


class Customer(db.Model):
    __tablename__ = 'customers'

    id         = db.Column(db.Integer, primary_key=True)
    name       = db.Column(db.String(100), nullable=False)
    phone      = db.Column(db.String(20), unique=True, nullable=True, index=True)
    email      = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Customer {self.name} ({self.phone})>"
