from datetime import date, datetime
from decimal import Decimal
from erp import db


class Sale(db.Model):
    """
    One completed point-of-sale transaction.
    Customer and warehouse names are copied in at sale time so later
    renames do not alter historical sales.
    """
    __tablename__ = 'sales'

    id                  = db.Column(db.Integer, primary_key=True)
    customer_id         = db.Column(db.Integer, db.ForeignKey('customers.id'), nullable=True)
    customer_name       = db.Column(db.String(100), nullable=False)
    warehouse_id        = db.Column(db.Integer, db.ForeignKey('warehouses.id'), nullable=True)
    warehouse_name      = db.Column(db.String(200), nullable=False)
    sale_date           = db.Column(db.Date, nullable=False, default=date.today)
    salesperson         = db.Column(db.String(120), nullable=False)
    payment_method      = db.Column(db.String(30), nullable=False)
    subtotal            = db.Column(db.Numeric(14, 4), nullable=False)
    total_discount      = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    total_discount_type = db.Column(db.String(20), nullable=False, default='percentage')
    after_discount      = db.Column(db.Numeric(14, 4), nullable=False)
    tax_rate            = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    tax_amount          = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    total_amount        = db.Column(db.Numeric(14, 4), nullable=False)
    status              = db.Column(db.String(20), nullable=False, default='completed')
    created_at          = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    # ── Relationships ─────────────────────────────────────────────
    items = db.relationship('SaleItem', backref='sale', lazy='select',
                            cascade='all, delete-orphan')

    def to_dict(self) -> dict:
        return {
            'id':             self.id,
            'customer_name':  self.customer_name,
            'warehouse_name': self.warehouse_name,
            'sale_date':      self.sale_date.isoformat() if self.sale_date else None,
            'payment_method': self.payment_method,
            'total_amount':   str(Decimal(str(self.total_amount)).quantize(Decimal('0.01'))),
            'status':         self.status,
            'item_count':     len(self.items),
        }

    def __repr__(self):
        return f"<Sale {self.id} {self.customer_name!r} {self.total_amount}>"


class SaleItem(db.Model):
    """
    One line of a Sale: a snapshot of the product/packaging names, unit
    price, discount amount and line total at the time of sale.
    """
    __tablename__ = 'sale_items'

    id                     = db.Column(db.Integer, primary_key=True)
    sale_id                = db.Column(db.Integer, db.ForeignKey('sales.id'), nullable=False, index=True)
    product_id             = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    product_name           = db.Column(db.String(200), nullable=False)
    variation_id           = db.Column(db.Integer, db.ForeignKey('product_variations.id'), nullable=True)
    packaging_id           = db.Column(db.Integer, db.ForeignKey('packaging.id'), nullable=True)
    packaging_name         = db.Column(db.String(200), nullable=True)
    packaging_variation_id = db.Column(db.Integer, db.ForeignKey('packaging_variations.id'), nullable=True)
    quantity               = db.Column(db.Integer, nullable=False)
    price                  = db.Column(db.Numeric(12, 2), nullable=False)
    discount               = db.Column(db.Numeric(14, 4), nullable=True)
    total                  = db.Column(db.Numeric(14, 4), nullable=False)
    tax                    = db.Column(db.Numeric(14, 4), nullable=True)

    def __repr__(self):
        return f"<SaleItem sale={self.sale_id} product={self.product_id} qty={self.quantity}>"


class StockMovement(db.Model):
    """
    Audit trail for stock changes.
    Tracks old vs new stock and why.
    """
    __tablename__ = 'stock_movements'

    id           = db.Column(db.Integer, primary_key=True)
    product_id   = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    variation_id = db.Column(db.Integer, db.ForeignKey('product_variations.id'), nullable=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey('warehouses.id'), nullable=True)
    old_stock    = db.Column(db.Integer, nullable=False)
    new_stock    = db.Column(db.Integer, nullable=False)
    reason       = db.Column(db.String(255), nullable=False)
    sale_id      = db.Column(db.Integer, db.ForeignKey('sales.id'), nullable=True)
    timestamp    = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<StockMovement P:{self.product_id} {self.old_stock}->{self.new_stock} ({self.reason})>"
