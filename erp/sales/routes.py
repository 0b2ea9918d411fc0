from flask import current_app, jsonify, request, session

from erp.activity import AppActivityLogger
from erp.catalog.provider import load_catalog, load_parties
from erp.sales import sales
from erp.sales.cache import get_sales_listing, invalidate_sales_cache
from erp.sales.cart import (
    clear_cart, get_cart, parse_amount, parse_discount_type, parse_quantity, save_cart,
)
from erp.sales.identity import make_key
from erp.sales.models import Sale
from erp.sales.notify import RecordingNotifier
from erp.sales.pricing import price_cart
from erp.sales.repository import SqlSaleRepository
from erp.sales.stock import available_stock, can_add
from erp.sales.submission import SaleForm, SaleSubmission


WAREHOUSE_KEY = 'warehouse_id'


# ── Helpers ───────────────────────────────────────────────────────

def _payload() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


def _key_from(data: dict):
    return make_key(data.get('product_id'), data.get('packaging_id'),
                    data.get('variation_id'), data.get('packaging_variation_id'))


def _selected_warehouse(data: dict = None):
    """Warehouse from the request, remembered in the session for later cart reads."""
    warehouse_id = (data or {}).get('warehouse_id') or request.args.get('warehouse_id')
    if warehouse_id:
        session[WAREHOUSE_KEY] = str(warehouse_id)
    return session.get(WAREHOUSE_KEY)


def _cart_response(cart, error=None, status=200):
    """Price the cart against the live catalog and render it as JSON."""
    data   = load_catalog(session.get(WAREHOUSE_KEY))
    priced = price_cart(cart, data.products, data.packaging)
    return jsonify({
        'items':               [line.to_dict() for line in priced.items],
        'missing':             [{**m.item.to_dict(), 'reason': m.reason} for m in priced.missing],
        'totals':              priced.totals.to_dict(),
        'total_discount':      str(cart.total_discount),
        'total_discount_type': cart.total_discount_type.value,
        'tax_rate':            str(cart.tax_rate),
        'total_items':         cart.total_items,
        'error':               error,
    }), status


# ── CART ──────────────────────────────────────────────────────────

@sales.route('/cart')
def view_cart():
    _selected_warehouse()
    return _cart_response(get_cart())


@sales.route('/cart/add', methods=['POST'])
def add_item():
    """
    Add one unit of a product in a packaging.
    Refused when the product (as seen from the selected warehouse) has no
    stock left for another unit.
    """
    data = _payload()
    warehouse_id = _selected_warehouse(data)
    if not data.get('product_id') or not data.get('packaging_id'):
        return _cart_response(get_cart(), 'Product and packaging are required.', 400)

    cart = get_cart()
    catalog_data = load_catalog(warehouse_id)
    product = next((p for p in catalog_data.products if str(p.id) == str(data['product_id'])), None)
    if product is None:
        return _cart_response(cart, f'No product found with id {data["product_id"]}.', 404)

    variation_id = data.get('variation_id') or None
    if not can_add(cart, product, variation_id):
        stock = available_stock(product, variation_id)
        return _cart_response(cart, f'"{product.name}" is out of stock. Available: {stock}', 400)

    cart.add(data['product_id'], data['packaging_id'], variation_id,
             data.get('packaging_variation_id') or None)
    save_cart(cart)
    return _cart_response(cart)


@sales.route('/cart/quantity', methods=['POST'])
def update_quantity():
    data = _payload()
    quantity = parse_quantity(data.get('quantity', 0))
    if quantity is None:
        return _cart_response(get_cart(), 'Quantity must be a whole number.', 400)

    cart = get_cart()
    cart.update_quantity(_key_from(data), quantity)
    save_cart(cart)
    return _cart_response(cart)


@sales.route('/cart/remove', methods=['POST'])
def remove_item():
    cart = get_cart()
    cart.remove(_key_from(_payload()))
    save_cart(cart)
    return _cart_response(cart)


def _invalid_fields(data: dict, amounts=(), types=()) -> list:
    """Names of the submitted fields that the cart would ignore."""
    bad = [name for name in amounts if name in data and parse_amount(data[name]) is None]
    bad += [name for name in types if name in data and parse_discount_type(data[name]) is None]
    return bad


@sales.route('/cart/discount', methods=['POST'])
def update_discount():
    """Line discount and/or its type, for every packaging of a product/variation."""
    data = _payload()
    cart = get_cart()
    invalid = _invalid_fields(data, amounts=('discount',), types=('discount_type',))
    if invalid:
        return _cart_response(cart, f'Invalid discount: {", ".join(invalid)}', 400)

    if 'discount' in data:
        cart.update_discount(data.get('product_id'), data['discount'], data.get('variation_id'))
    if 'discount_type' in data:
        cart.update_discount_type(data.get('product_id'), data['discount_type'], data.get('variation_id'))
    save_cart(cart)
    return _cart_response(cart)


@sales.route('/cart/free-gift', methods=['POST'])
def toggle_free_gift():
    cart = get_cart()
    cart.toggle_free_gift(_key_from(_payload()))
    save_cart(cart)
    return _cart_response(cart)


@sales.route('/cart/adjustments', methods=['POST'])
def update_adjustments():
    """Cart-wide discount, discount type and tax rate."""
    data = _payload()
    cart = get_cart()
    invalid = _invalid_fields(data, amounts=('total_discount', 'tax_rate'), types=('total_discount_type',))
    if invalid:
        return _cart_response(cart, f'Invalid adjustment: {", ".join(invalid)}', 400)

    if 'total_discount' in data:
        cart.set_total_discount(data['total_discount'])
    if 'total_discount_type' in data:
        cart.set_total_discount_type(data['total_discount_type'])
    if 'tax_rate' in data:
        cart.set_tax_rate(data['tax_rate'])
    save_cart(cart)
    return _cart_response(cart)


@sales.route('/cart/clear', methods=['POST'])
def clear():
    clear_cart()
    return _cart_response(get_cart())


# ── COMPLETE SALE ─────────────────────────────────────────────────

@sales.route('/complete', methods=['POST'])
def complete():
    """
    Finalise the sale from the session cart:
      1. Price the cart against the catalog of the selected warehouse
      2. Hand form + priced lines + totals to SaleSubmission
      3. On success, clear the cart
    """
    data = _payload()
    warehouse_id = _selected_warehouse(data)
    cart = get_cart()

    catalog_data = load_catalog(warehouse_id)
    priced = price_cart(cart, catalog_data.products, catalog_data.packaging)
    customers, warehouses = load_parties()

    notifier = RecordingNotifier()
    submission = SaleSubmission(
        persistence=SqlSaleRepository(),
        customers=customers,
        warehouses=warehouses,
        invalidate_cache=invalidate_sales_cache,
        notify=notifier,
        activity=AppActivityLogger(current_app.logger),
        salesperson=current_app.config['DEFAULT_SALESPERSON'],
        currency_symbol=current_app.config['CURRENCY_SYMBOL'],
    )
    form = SaleForm(
        warehouse_id=warehouse_id,
        customer_id=data.get('customer_id'),
        payment_method=data.get('payment_method'),
        sale_date=data.get('sale_date') or None,
        total_discount_type=cart.total_discount_type,
        tax_rate=cart.tax_rate,
    )
    result = submission.submit(form, priced.items, priced.totals)

    if result.success:
        clear_cart()
        return jsonify({**result.to_dict(), 'notifications': notifier.messages}), 201

    return jsonify({**result.to_dict(), 'notifications': notifier.messages}), 400


# ── LISTING ───────────────────────────────────────────────────────

@sales.route('/')
def index():
    """Recent sales, served from the shared listing cache."""
    listing = get_sales_listing(
        lambda: [s.to_dict() for s in Sale.query.order_by(Sale.id.desc()).limit(100).all()]
    )
    return jsonify(listing)
