from decimal import Decimal
from flask import current_app, jsonify, request

from erp import db
from erp.catalog import catalog
from erp.catalog.models import Product, ProductVariation
from erp.catalog.provider import load_catalog
from erp.catalog.validators import validate_variation_form
from erp.sales.stock import available_stock


def _product_json(product: Product) -> dict:
    return {
        'id':              product.id,
        'name':            product.name,
        'type':            product.type,
        'price':           None if product.price is None else str(product.price),
        'available_stock': available_stock(product),
        'variations': [{
            'id':               v.id,
            'sku':              v.sku,
            'price':            str(v.price),
            'attribute_values': v.attribute_values,
            'available_stock':  available_stock(product, v.id),
        } for v in product.variations],
    }


@catalog.route('/')
def index():
    """Products and packaging, with stock as seen from the selected warehouse."""
    data = load_catalog(request.args.get('warehouse_id'))
    return jsonify({
        'products':  [_product_json(p) for p in data.products],
        'packaging': [{
            'id':         pk.id,
            'title':      pk.title,
            'variations': [{'id': v.id, 'sku': v.sku} for v in pk.variations],
        } for pk in data.packaging],
    })


@catalog.route('/products/<int:product_id>/variations', methods=['POST'])
def add_variation(product_id):
    """Create a variation after checking its attribute combination and SKU are unique."""
    product = db.session.get(Product, product_id)
    if product is None or not product.is_variant:
        return jsonify({'error': 'Variation product not found'}), 404

    data = request.get_json() or {}
    attribute_ids = data.get('attribute_ids') or list((data.get('attribute_values') or {}).keys())
    errors = validate_variation_form(data, attribute_ids, product.variations)
    if errors:
        current_app.logger.warning(f"Variation rejected for product {product_id}: {errors}")
        return jsonify({'errors': errors}), 400

    variation = ProductVariation(
        product_id=product.id,
        sku=data['sku'].strip(),
        price=Decimal(str(data.get('price') or '0')),
        buying_price=Decimal(str(data.get('buying_price') or '0')),
        stock=int(data.get('stock') or 0),
    )
    variation.attribute_values = data.get('attribute_values') or {}
    db.session.add(variation)
    db.session.commit()

    current_app.logger.info(f"Variation {variation.sku} added to product {product_id}")
    return jsonify({'id': variation.id, 'sku': variation.sku}), 201
