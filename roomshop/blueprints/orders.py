"""Orders blueprint - direct purchases and status changes (JSON API)."""
from flask import Blueprint, jsonify, g
from roomshop.database import get_session
from roomshop.services import order_service
from roomshop.middleware import require_login
from roomshop.utils.request_parsing import get_payload, get_int, get_str

orders_bp = Blueprint('orders', __name__, url_prefix='/api/orders')


@orders_bp.route('', methods=['GET'])
@require_login
def index():
    """Main orders where the current user is buyer or seller."""
    orders = order_service.list_orders(get_session(), g.user)
    return jsonify({'status': 'success', **orders})


@orders_bp.route('', methods=['POST'])
@require_login
def store():
    """Buy now, bypassing the cart."""
    payload = get_payload()
    product_id = get_int(payload, 'product_id')
    quantity = get_int(payload, 'quantity', min_value=1)

    order = order_service.place_direct_order(get_session(), g.user, product_id, quantity, payload)
    return jsonify({'status': 'success', 'order': order.to_dict()}), 201


@orders_bp.route('/<int:order_id>', methods=['GET'])
@require_login
def show(order_id):
    order = order_service.get_order(get_session(), order_id, g.user)
    return jsonify({'status': 'success', 'order': order.to_dict(include_children=order.is_main)})


@orders_bp.route('/<int:order_id>/status', methods=['PATCH', 'POST'])
@require_login
def update_status(order_id):
    """Seller accepts, rejects, cancels or delivers an order batch."""
    status = get_str(get_payload(), 'status', max_length=20)
    batch = order_service.update_status(get_session(), order_id, status, g.user)
    return jsonify({'status': 'success', 'order': batch.to_dict()})


@orders_bp.route('/<int:order_id>/cancel', methods=['POST'])
@require_login
def cancel(order_id):
    batch = order_service.cancel_order(get_session(), order_id, g.user)
    return jsonify({'status': 'success', 'message': 'Order cancelled', 'order': batch.to_dict()})
