"""
erp/sales/repository.py
-----------------------
SQLAlchemy persistence for completed sales.

create_sale() runs in one transaction:
  1. Lock the product / variation rows being sold (SELECT … FOR UPDATE)
  2. Insert the Sale, flush for its id
  3. Insert one SaleItem per line
  4. Deduct stock (variation, else product; plus the warehouse row when present),
     refusing a line whose locked row holds fewer units than it sells,
     and write a StockMovement per deduction
  5. Commit

Any database failure rolls the whole transaction back and is re-raised
as PersistenceError; nothing is half-written.
"""
import logging
from datetime import date
from typing import List

from sqlalchemy.exc import SQLAlchemyError

from erp import db
from erp.catalog.models import Product, ProductVariation, WarehouseStock
from erp.sales.errors import ErrorDetail, PersistenceError
from erp.sales.models import Sale, SaleItem, StockMovement

logger = logging.getLogger(__name__)


def _int_or_none(value):
    return int(value) if value not in (None, '') else None


class SqlSaleRepository:
    def __init__(self, session=None):
        self.session = session or db.session

    def create_sale(self, sale_record, line_records: List) -> Sale:
        try:
            sale = Sale(
                customer_id=_int_or_none(sale_record.customer_id),
                customer_name=sale_record.customer_name,
                warehouse_id=_int_or_none(sale_record.warehouse_id),
                warehouse_name=sale_record.warehouse_name,
                sale_date=date.fromisoformat(sale_record.sale_date),
                salesperson=sale_record.salesperson,
                payment_method=sale_record.payment_method,
                subtotal=sale_record.subtotal,
                total_discount=sale_record.total_discount,
                total_discount_type=sale_record.total_discount_type,
                after_discount=sale_record.after_discount,
                tax_rate=sale_record.tax_rate,
                tax_amount=sale_record.tax_amount,
                total_amount=sale_record.total_amount,
                status=sale_record.status,
            )
            self.session.add(sale)
            self.session.flush()   # assigns sale.id without committing

            for line in line_records:
                self.session.add(SaleItem(
                    sale_id=sale.id,
                    product_id=int(line.product_id),
                    product_name=line.product_name,
                    variation_id=_int_or_none(line.variation_id),
                    packaging_id=_int_or_none(line.packaging_id),
                    packaging_name=line.packaging_name,
                    packaging_variation_id=_int_or_none(line.packaging_variation_id),
                    quantity=line.quantity,
                    price=line.price,
                    discount=line.discount or None,
                    total=line.total,
                    tax=line.tax or None,
                ))
                self._deduct_stock(sale, line)

            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(f"Sale rollback (SQLAlchemyError): {exc}")
            orig = getattr(exc, 'orig', None)
            raise PersistenceError(ErrorDetail(
                message='A database error occurred while saving the sale.',
                details=str(orig) if orig is not None else None,
                fallback=str(exc),
            )) from exc
        except (ValueError, LookupError) as exc:
            self.session.rollback()
            logger.warning(f"Sale rollback ({type(exc).__name__}): {exc}")
            raise PersistenceError(ErrorDetail(message=str(exc))) from exc

        return sale

    def _deduct_stock(self, sale: Sale, line) -> None:
        """
        Re-read the stock row under a lock and deduct from it.
        Stock is re-checked here: the pre-submission check read it without a lock.
        """
        variation_id = _int_or_none(line.variation_id)
        if variation_id is not None:
            query = self.session.query(ProductVariation).filter(ProductVariation.id == variation_id)
        else:
            query = self.session.query(Product).filter(Product.id == int(line.product_id))
        # populate_existing: the catalog load may have left a stale copy in the identity map
        row = query.with_for_update().populate_existing().first()
        if row is None:
            raise LookupError(f"Product {line.product_name!r} no longer exists.")

        old_stock = row.stock or 0
        if old_stock < line.quantity:
            raise ValueError(f"Insufficient stock for {line.product_name}. Available: {old_stock}")

        row.stock = old_stock - line.quantity
        self.session.add(StockMovement(
            product_id=int(line.product_id),
            variation_id=variation_id,
            warehouse_id=sale.warehouse_id,
            old_stock=old_stock,
            new_stock=row.stock,
            reason='Sale Deduction',
            sale_id=sale.id,
        ))

        if sale.warehouse_id is None:
            return
        held = (
            self.session.query(WarehouseStock)
            .filter_by(warehouse_id=sale.warehouse_id,
                       product_id=int(line.product_id),
                       variation_id=variation_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if held is not None:
            held.quantity = max(held.quantity - line.quantity, 0)
