"""Cart blueprint - reservation-backed shopping cart (JSON API)."""
from flask import Blueprint, jsonify, g
from roomshop.database import get_session
from roomshop.services import cart_service
from roomshop.middleware import require_login
from roomshop.utils.request_parsing import get_payload, get_int

cart_bp = Blueprint('cart', __name__, url_prefix='/api/cart')


def _item_dict(item):
    return {
        'id': item.id,
        'product_id': item.product_id,
        'quantity': item.quantity,
        'reserved_stock': item.reserved_stock,
        'available_stock': item.available_stock,
    }


@cart_bp.route('', methods=['GET'])
@require_login
def index():
    """Cart lines with availability and totals."""
    cart = cart_service.get_cart(get_session(), g.user)
    return jsonify({'status': 'success', **cart})


@cart_bp.route('/count', methods=['GET'])
@require_login
def count():
    return jsonify({'status': 'success', 'count': cart_service.cart_count(get_session(), g.user)})


@cart_bp.route('', methods=['POST'])
@require_login
def add():
    payload = get_payload()
    product_id = get_int(payload, 'product_id')
    quantity = get_int(payload, 'quantity', required=False, default=1, min_value=1)

    item = cart_service.add_to_cart(get_session(), g.user, product_id, quantity)
    return jsonify({
        'status': 'success',
        'message': 'Product added to cart',
        'cart_item': _item_dict(item),
    }), 201


@cart_bp.route('/<int:item_id>', methods=['PUT', 'PATCH'])
@require_login
def update(item_id):
    payload = get_payload()
    quantity = get_int(payload, 'quantity', min_value=1)

    item = cart_service.update_quantity(get_session(), g.user, item_id, quantity)
    return jsonify({'status': 'success', 'cart_item': _item_dict(item)})


@cart_bp.route('/<int:item_id>', methods=['DELETE'])
@require_login
def remove(item_id):
    cart_service.remove_item(get_session(), g.user, item_id)
    return jsonify({'status': 'success', 'message': 'Item removed from cart'})


@cart_bp.route('', methods=['DELETE'])
@require_login
def clear():
    removed = cart_service.clear_cart(get_session(), g.user)
    return jsonify({'status': 'success', 'removed': removed})


@cart_bp.route('/checkout', methods=['POST'])
@require_login
def checkout():
    """Place one order per cart line (a batch when several products are bought)."""
    result = cart_service.checkout(get_session(), g.user, get_payload())
    return jsonify({'status': 'success', 'message': 'Order placed', **result}), 201
