"""
test_submission.py — Tests for the sale submission coordinator.
Run: pytest test_submission.py -v
"""
from decimal import Decimal
from types import SimpleNamespace

import pytest

from erp.activity import RecordingActivityLogger
from erp.sales.cart import CartStore
from erp.sales.errors import ErrorDetail, PersistenceError
from erp.sales.notify import RecordingNotifier
from erp.sales.pricing import price_cart
from erp.sales.submission import (
    SaleForm, SaleSubmission, SubmissionState, calculate_profit, deduplicate,
)


# ── Fakes ─────────────────────────────────────────────────────────

class FakePersistence:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def create_sale(self, sale, lines):
        if self.error is not None:
            raise self.error
        self.calls.append((sale, lines))
        return {'id': 'S-1', **sale.to_dict()}


class SupabaseLikeError(Exception):
    def __init__(self, message=None, details=None, hint=None, code=None):
        super().__init__()
        self.message = message
        self.details = details
        self.hint = hint
        self.code = code


PRODUCTS = [
    SimpleNamespace(id=1, name='Rice', type='simple', price=Decimal('100'),
                    buying_price=Decimal('60'), stock=10, variations=[], warehouse_stock=None),
    SimpleNamespace(id=2, name='Oil', type='simple', price=Decimal('50'),
                    buying_price=None, stock=1, variations=[], warehouse_stock=None),
]
PACKAGING = [SimpleNamespace(id=9, title='Sack', variations=[])]
CUSTOMERS  = [SimpleNamespace(id=5, name='Karim')]
WAREHOUSES = [{'id': 7, 'name': 'Main'}]


@pytest.fixture
def persistence():
    return FakePersistence()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def activity():
    return RecordingActivityLogger()


@pytest.fixture
def submission(persistence, notifier, activity):
    invalidations = []
    sub = SaleSubmission(persistence, CUSTOMERS, WAREHOUSES,
                         invalidate_cache=lambda: invalidations.append(True),
                         notify=notifier, activity=activity)
    sub.invalidations = invalidations
    return sub


def full_form(**overrides):
    data = dict(warehouse_id='7', customer_id='5', payment_method='cash', sale_date='2026-01-15')
    data.update(overrides)
    return SaleForm(**data)


def priced(cart):
    return price_cart(cart, PRODUCTS, PACKAGING)


def rice_cart(qty=3):
    cart = CartStore()
    for _ in range(qty):
        cart.add(1, 9)
    return cart


# ── 1. Field validation ───────────────────────────────────────────

@pytest.mark.parametrize('missing, message', [
    ('warehouse_id',   'Please select a warehouse'),
    ('customer_id',    'Please select a customer'),
    ('payment_method', 'Please select a payment method'),
])
def test_missing_field_fails_without_persisting(submission, persistence, notifier, missing, message):
    p = priced(rice_cart())
    result = submission.submit(full_form(**{missing: None}), p.items, p.totals)
    assert result.success is False
    assert result.message == message
    assert persistence.calls == []
    assert notifier.last == ('error', message)


def test_fields_checked_in_priority_order(submission):
    p = priced(rice_cart())
    form = SaleForm(warehouse_id=None, customer_id=None, payment_method=None)
    assert submission.submit(form, p.items, p.totals).message == 'Please select a warehouse'


def test_empty_cart_fails(submission, persistence):
    p = priced(CartStore())
    result = submission.submit(full_form(), p.items, p.totals)
    assert result.message == 'Please add at least one item to the cart'
    assert persistence.calls == []


# ── 2. Stock re-check ─────────────────────────────────────────────

def test_over_stock_fails_with_stock_message(submission, persistence):
    cart = CartStore()
    cart.add(2, 9)
    cart.add(2, 9)
    p = priced(cart)
    result = submission.submit(full_form(), p.items, p.totals)
    assert result.success is False
    assert result.message == 'Insufficient stock for Oil. Available: 1'
    assert persistence.calls == []
    assert submission.last_state == SubmissionState.FAILED
    assert submission.state == SubmissionState.IDLE


# ── 3. Success path ───────────────────────────────────────────────

def test_successful_sale_builds_records(submission, persistence, notifier, activity):
    cart = rice_cart(3)
    cart.update_discount(1, 10)
    p = priced(cart)

    result = submission.submit(full_form(), p.items, p.totals)

    assert result.success is True
    assert result.sale_id == 'S-1'
    assert result.revenue == Decimal('270')
    assert result.profit == Decimal('90')   # 270 − 60 × 3
    assert result.message == 'Sale #S-1 completed successfully! Revenue: ৳270.00, Profit: ৳90.00'

    sale, lines = persistence.calls[0]
    assert sale.customer_name == 'Karim'
    assert sale.warehouse_name == 'Main'
    assert sale.status == 'completed'
    assert sale.total_amount == Decimal('270')
    assert sale.payment_method == 'cash'
    assert len(lines) == 1
    assert lines[0].product_name == 'Rice'
    assert lines[0].packaging_name == 'Sack'
    assert lines[0].price == Decimal('100')
    assert lines[0].discount == Decimal('30')
    assert lines[0].total == Decimal('270')
    assert lines[0].tax == Decimal('0')

    assert submission.invalidations == [True]
    assert notifier.last[0] == 'success'
    assert activity.events[0].action == 'sale.created'
    assert activity.events[0].resource_id == 'S-1'
    assert submission.last_state == SubmissionState.SUCCEEDED


def test_unknown_customer_and_warehouse_names(submission, persistence):
    p = priced(rice_cart(1))
    submission.submit(full_form(customer_id='404', warehouse_id='404'), p.items, p.totals)
    sale, _ = persistence.calls[0]
    assert sale.customer_name == 'Unknown Customer'
    assert sale.warehouse_name == 'Unknown Warehouse'


def test_duplicate_lines_persist_once(submission, persistence):
    p = priced(rice_cart(1))
    doubled = p.items + p.items
    result = submission.submit(full_form(), doubled, p.totals)
    assert result.success is True
    _, lines = persistence.calls[0]
    assert len(lines) == 1


def test_deduplicate_keeps_first_occurrence():
    cart = CartStore()
    cart.add(1, 9)
    cart.add(2, 9)
    lines = priced(cart).items
    assert deduplicate([lines[0], lines[1], lines[0]]) == [lines[0], lines[1]]


def test_profit_treats_missing_buying_price_as_zero():
    cart = CartStore()
    cart.add(2, 9)
    p = priced(cart)
    assert calculate_profit(p.totals.grand_total, p.items) == Decimal('50')


# ── 4. Persistence failures ───────────────────────────────────────

@pytest.mark.parametrize('error, expected', [
    (SupabaseLikeError(message='duplicate key'), 'duplicate key'),
    (SupabaseLikeError(details='row violates check'), 'row violates check'),
    (SupabaseLikeError(hint='retry later'), 'retry later'),
    (RuntimeError('connection reset'), 'connection reset'),
    (SupabaseLikeError(code='42P01'), '{"code": "42P01", "details": null, "hint": null, "message": null}'),
])
def test_persistence_error_normalised(notifier, error, expected):
    sub = SaleSubmission(FakePersistence(error), CUSTOMERS, WAREHOUSES, notify=notifier)
    p = priced(rice_cart(1))
    result = sub.submit(full_form(), p.items, p.totals)
    assert result.success is False
    assert result.message == f'Failed to complete sale: {expected}'
    assert notifier.last == ('error', result.message)


def test_persistence_error_passthrough():
    detail = ErrorDetail(message='A database error occurred while saving the sale.')
    sub = SaleSubmission(FakePersistence(PersistenceError(detail)))
    p = priced(rice_cart(1))
    result = sub.submit(full_form(), p.items, p.totals)
    assert result.message == 'Failed to complete sale: A database error occurred while saving the sale.'


def test_failed_persistence_does_not_invalidate_cache(notifier):
    calls = []
    sub = SaleSubmission(FakePersistence(RuntimeError('boom')), invalidate_cache=lambda: calls.append(1))
    p = priced(rice_cart(1))
    sub.submit(full_form(), p.items, p.totals)
    assert calls == []


# ── 5. Nothing escapes submit() ───────────────────────────────────

class NoIdPersistence(FakePersistence):
    def create_sale(self, sale, lines):
        self.calls.append((sale, lines))
        return None


def broken(*args):
    raise ConnectionError('cache down')


def test_sale_without_returned_id_fails_cleanly(notifier):
    sub = SaleSubmission(NoIdPersistence(), notify=notifier)
    p = priced(rice_cart(1))
    result = sub.submit(full_form(), p.items, p.totals)
    assert result.success is False
    assert result.message == 'Failed to complete sale: The saved sale came back without an id'
    assert sub.last_state == SubmissionState.FAILED


def test_dict_without_id_fails_cleanly():
    class DictPersistence(FakePersistence):
        def create_sale(self, sale, lines):
            return {'status': 'completed'}

    p = priced(rice_cart(1))
    result = SaleSubmission(DictPersistence()).submit(full_form(), p.items, p.totals)
    assert result.success is False
    assert result.message.startswith('Failed to complete sale: ')


def test_cache_failure_after_commit_keeps_success(persistence, notifier, activity):
    sub = SaleSubmission(persistence, CUSTOMERS, WAREHOUSES, invalidate_cache=broken,
                         notify=notifier, activity=activity)
    p = priced(rice_cart(1))
    result = sub.submit(full_form(), p.items, p.totals)
    assert result.success is True
    assert len(persistence.calls) == 1
    assert activity.events[0].action == 'sale.created'
    assert notifier.last[0] == 'success'


def test_activity_failure_after_commit_keeps_success(persistence, notifier):
    class BrokenActivity:
        def log_activity(self, event):
            raise RuntimeError('audit table missing')

    sub = SaleSubmission(persistence, notify=notifier, activity=BrokenActivity())
    p = priced(rice_cart(1))
    result = sub.submit(full_form(), p.items, p.totals)
    assert result.success is True
    assert notifier.last[0] == 'success'


def test_notifier_failure_does_not_raise(persistence):
    sub = SaleSubmission(persistence, notify=broken)
    p = priced(rice_cart(1))
    assert sub.submit(full_form(), p.items, p.totals).success is True
    assert sub.submit(full_form(payment_method=None), p.items, p.totals).success is False


def test_unknown_cart_discount_type_fails_without_persisting(persistence, notifier):
    sub = SaleSubmission(persistence, notify=notifier)
    p = priced(rice_cart(1))
    result = sub.submit(full_form(total_discount_type='bogus'), p.items, p.totals)
    assert result.success is False
    assert result.message.startswith('Failed to complete sale: ')
    assert persistence.calls == []
    assert notifier.last == ('error', result.message)
    assert sub.state == SubmissionState.IDLE
