"""
erp/sales/submission.py
-----------------------
Turns a priced cart into a persisted sale.

Each attempt runs these gates in order; the first failure ends the attempt:

  1. Field validation   warehouse, customer, payment method, non-empty cart
  2. Stock re-check     erp.sales.stock.check_submission_stock
  3. Deduplication      lines sharing a four-part key collapse to the first
  4. Record building    one SaleRecord + one SaleLineRecord per unique line
  5. Persist            persistence.create_sale(sale, lines), all or nothing
  6. Post-commit        invalidate the listing cache, log the activity
                        event, notify; a failure here is logged only

submit() never raises: every outcome is a SaleResult.
"""
import enum
import logging
from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Protocol

from erp.activity import ActivityEvent, ActivityLogger
from erp.sales.cart import DiscountType, to_decimal
from erp.sales.errors import ErrorDetail, PersistenceError, SaleError, ValidationError
from erp.sales.identity import LineKey
from erp.sales.pricing import CartTotals, ResolvedLineItem, money
from erp.sales.stock import check_submission_stock

logger = logging.getLogger(__name__)


class SubmissionState(enum.Enum):
    IDLE       = 'idle'
    VALIDATING = 'validating'
    SUBMITTING = 'submitting'
    SUCCEEDED  = 'succeeded'
    FAILED     = 'failed'


@dataclass
class SaleForm:
    warehouse_id:        Optional[str] = None
    customer_id:         Optional[str] = None
    payment_method:      Optional[str] = None
    sale_date:           Optional[str] = None
    total_discount_type: DiscountType = DiscountType.PERCENTAGE
    tax_rate:            Decimal = Decimal('0')


@dataclass
class SaleRecord:
    customer_id:         str
    customer_name:       str
    warehouse_id:        str
    warehouse_name:      str
    sale_date:           str
    salesperson:         str
    payment_method:      str
    subtotal:            Decimal
    after_discount:      Decimal
    total_discount:      Decimal
    total_discount_type: str
    tax_rate:            Decimal
    tax_amount:          Decimal
    total_amount:        Decimal
    status:              str = 'completed'

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SaleLineRecord:
    product_id:             str
    product_name:           str
    variation_id:           Optional[str]
    packaging_id:           str
    packaging_name:         str
    packaging_variation_id: Optional[str]
    quantity:               int
    price:                  Decimal
    discount:               Decimal
    total:                  Decimal
    tax:                    Decimal = Decimal('0')   # tax is cart-level only

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SaleResult:
    success:  bool
    message:  str
    sale_id:  Optional[str] = None
    revenue:  Optional[Decimal] = None
    profit:   Optional[Decimal] = None
    items:    List[ResolvedLineItem] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'success': self.success,
            'message': self.message,
            'sale_id': self.sale_id,
            'revenue': None if self.revenue is None else str(money(self.revenue)),
            'profit':  None if self.profit is None else str(money(self.profit)),
            'items':   [line.to_dict() for line in self.items],
        }


class SalePersistence(Protocol):
    def create_sale(self, sale: SaleRecord, lines: List[SaleLineRecord]):
        """Persist the sale and its lines together; return the stored sale (with an id)."""
        ...


# ── Helpers ───────────────────────────────────────────────────────

def deduplicate(lines: Iterable[ResolvedLineItem]) -> List[ResolvedLineItem]:
    """Keep the first line for each four-part key, in order."""
    seen = set()
    unique = []
    for line in lines:
        key = LineKey.of(line)
        if key in seen:
            continue
        seen.add(key)
        unique.append(line)
    return unique


def calculate_profit(grand_total, lines: Iterable[ResolvedLineItem]) -> Decimal:
    """grand_total − Σ buying price × quantity (missing buying price counts as 0)."""
    expense = sum((line.buying_price * Decimal(line.quantity) for line in lines), start=Decimal('0'))
    return to_decimal(grand_total) - expense


def _name_of(rows, wanted, default: str) -> str:
    for row in rows or []:
        row_id = row['id'] if isinstance(row, dict) else row.id
        if str(row_id) == str(wanted):
            return row['name'] if isinstance(row, dict) else row.name
    return default


def _sale_id(stored) -> str:
    if isinstance(stored, dict):
        sale_id = stored.get('id')
    else:
        sale_id = getattr(stored, 'id', None)
    if sale_id is None:
        raise LookupError('The saved sale came back without an id')
    return str(sale_id)


# ── Coordinator ───────────────────────────────────────────────────

class SaleSubmission:
    """
    Validates and persists one sale per submit() call.

    Collaborators:
        persistence       create_sale(sale_record, line_records) -> stored sale
        customers         rows with id/name, for the denormalised customer name
        warehouses        rows with id/name, for the denormalised warehouse name
        invalidate_cache  no-arg callable run after a successful commit
        notify            notify(message, category)
        activity          ActivityLogger receiving a 'sale.created' event
    """

    def __init__(self, persistence: SalePersistence, customers=None, warehouses=None,
                 invalidate_cache: Optional[Callable[[], None]] = None,
                 notify: Optional[Callable[..., None]] = None,
                 activity: Optional[ActivityLogger] = None,
                 salesperson: str = 'System User',
                 currency_symbol: str = '৳'):
        self.persistence      = persistence
        self.customers        = list(customers or [])
        self.warehouses       = list(warehouses or [])
        self.invalidate_cache = invalidate_cache
        self.notify           = notify
        self.activity         = activity
        self.salesperson      = salesperson
        self.currency_symbol  = currency_symbol

        self.state      = SubmissionState.IDLE
        self.last_state = SubmissionState.IDLE

    # ── Gate 1 ────────────────────────────────────────────────────

    @staticmethod
    def validate_form(form: SaleForm, is_cart_empty: bool) -> None:
        if not form.warehouse_id:
            raise ValidationError('Please select a warehouse', field='warehouse_id')
        if not form.customer_id:
            raise ValidationError('Please select a customer', field='customer_id')
        if not form.payment_method:
            raise ValidationError('Please select a payment method', field='payment_method')
        if is_cart_empty:
            raise ValidationError('Please add at least one item to the cart', field='items')

    # ── Gate 4 ────────────────────────────────────────────────────

    def build_records(self, form: SaleForm, lines: List[ResolvedLineItem], totals: CartTotals):
        sale = SaleRecord(
            customer_id=str(form.customer_id),
            customer_name=_name_of(self.customers, form.customer_id, 'Unknown Customer'),
            warehouse_id=str(form.warehouse_id),
            warehouse_name=_name_of(self.warehouses, form.warehouse_id, 'Unknown Warehouse'),
            sale_date=form.sale_date or date.today().isoformat(),
            salesperson=self.salesperson,
            payment_method=form.payment_method,
            subtotal=totals.subtotal,
            after_discount=totals.subtotal - totals.total_discount_amount,
            total_discount=totals.total_discount_amount,
            total_discount_type=DiscountType(form.total_discount_type).value,
            tax_rate=to_decimal(form.tax_rate),
            tax_amount=totals.tax_amount,
            total_amount=totals.grand_total,
        )

        line_records = []
        for line in lines:
            # Catalog price, ignoring the free-gift flag
            if line.variation is not None and line.variation.price:
                price = to_decimal(line.variation.price)
            else:
                price = to_decimal(getattr(line.product, 'price', None))
            line_records.append(SaleLineRecord(
                product_id=line.product_id,
                product_name=line.product.name,
                variation_id=line.variation_id,
                packaging_id=line.packaging_id,
                packaging_name=line.packaging.title,
                packaging_variation_id=line.packaging_variation_id,
                quantity=line.quantity,
                price=price,
                discount=line.discount_amount,
                total=line.total,
            ))
        return sale, line_records

    # ── Entry point ───────────────────────────────────────────────

    def submit(self, form: SaleForm, lines: List[ResolvedLineItem], totals: CartTotals) -> SaleResult:
        lines = list(lines or [])
        try:
            self.state = SubmissionState.VALIDATING
            self.validate_form(form, is_cart_empty=not lines)
            check_submission_stock(lines)

            unique = deduplicate(lines)
            if len(unique) != len(lines):
                logger.warning(f"Removed duplicate cart items: {len(lines) - len(unique)}")

            sale, line_records = self.build_records(form, unique, totals)
            profit = calculate_profit(totals.grand_total, lines)

            self.state = SubmissionState.SUBMITTING
            sale_id = self._persist(sale, line_records)

        except PersistenceError as exc:
            logger.error(f"Sale persistence failed: {exc.detail}")
            return self._fail(f"Failed to complete sale: {exc.message}")

        except SaleError as exc:
            logger.warning(f"Sale rejected: {exc.message}")
            return self._fail(exc.message)

        except Exception as exc:
            logger.exception("Unexpected error while submitting sale")
            return self._fail(f"Failed to complete sale: {ErrorDetail.from_exception(exc).user_message()}")

        # The sale is committed: later failures are logged, never reported as a failed sale.
        result = SaleResult(
            success=True,
            message=(
                f"Sale #{sale_id} completed successfully! "
                f"Revenue: {self.currency_symbol}{money(totals.grand_total)}, "
                f"Profit: {self.currency_symbol}{money(profit)}"
            ),
            sale_id=sale_id,
            revenue=totals.grand_total,
            profit=profit,
            items=lines,
        )
        logger.info(f"Sale {sale_id} completed | Total: {money(totals.grand_total)} | Lines: {len(line_records)}")
        if self.invalidate_cache:
            self._safely('cache invalidation', self.invalidate_cache)
        if self.activity is not None:
            self._safely('activity log', self._record_activity, sale_id, sale, line_records)
        self._finish(SubmissionState.SUCCEEDED, result.message, 'success')
        return result

    # ── Internals ─────────────────────────────────────────────────

    def _persist(self, sale: SaleRecord, line_records: List[SaleLineRecord]) -> str:
        """Store the sale and return its id; any collaborator failure comes back as PersistenceError."""
        try:
            return _sale_id(self.persistence.create_sale(sale, line_records))
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(ErrorDetail.from_exception(exc)) from exc

    def _safely(self, step: str, func: Callable, *args) -> None:
        """Run a side effect whose failure must not change the outcome."""
        try:
            func(*args)
        except Exception:
            logger.exception(f"Sale side effect failed: {step}")

    def _record_activity(self, sale_id: str, sale: SaleRecord, line_records: List[SaleLineRecord]) -> None:
        self.activity.log_activity(ActivityEvent(
            action='sale.created',
            resource_type='sale',
            resource_id=sale_id,
            resource_name=f"Sale #{sale_id}",
            description=f"Sale to {sale.customer_name} from {sale.warehouse_name}",
            user_name=sale.salesperson,
            new_values={
                'total_amount': str(money(sale.total_amount)),
                'line_count':   len(line_records),
            },
        ))

    def _fail(self, message: str) -> SaleResult:
        self._finish(SubmissionState.FAILED, message, 'error')
        return SaleResult(success=False, message=message)

    def _finish(self, terminal: SubmissionState, message: str, category: str) -> None:
        self.last_state = terminal
        self.state = SubmissionState.IDLE
        if self.notify:
            self._safely('notify', self.notify, message, category)
