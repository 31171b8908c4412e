"""Rooms and products blueprint (JSON API)."""
from flask import Blueprint, jsonify, g
from roomshop.database import get_session
from roomshop.services import room_service, room_limit_service, product_service
from roomshop.middleware import require_login
from roomshop.utils.request_parsing import get_payload, get_int, get_str, get_bool

rooms_bp = Blueprint('rooms', __name__, url_prefix='/api')


@rooms_bp.route('/rooms', methods=['POST'])
@require_login
def create_room():
    payload = get_payload()
    attrs = {
        'name': get_str(payload, 'name', max_length=255),
        'description': get_str(payload, 'description', required=False),
        'type': get_str(payload, 'type', required=False, max_length=20),
        'password': payload.get('password'),
        'is_commercial': get_bool(payload, 'is_commercial'),
    }
    result = room_service.create_room(get_session(), g.user, attrs)
    return jsonify({'status': 'success', **result}), 201


@rooms_bp.route('/rooms/usage', methods=['GET'])
@require_login
def usage():
    """Monthly quota summary plus whether the next room is free."""
    db_session = get_session()
    return jsonify({
        'status': 'success',
        'usage': room_limit_service.get_room_usage_summary(db_session, g.user),
        'can_create': room_limit_service.can_create_room(db_session, g.user),
    })


@rooms_bp.route('/rooms/<int:room_id>/products', methods=['GET'])
@require_login
def list_products(room_id):
    db_session = get_session()
    products = product_service.list_room_products(db_session, room_id)
    return jsonify({'status': 'success', 'products': [p.to_dict() for p in products]})


@rooms_bp.route('/rooms/<int:room_id>/products', methods=['POST'])
@require_login
def create_product(room_id):
    payload = get_payload()
    attrs = dict(payload)
    attrs['price'] = get_int(payload, 'price', min_value=0)
    attrs['stock'] = get_int(payload, 'stock', required=False, default=0, min_value=0)
    product = product_service.create_product(get_session(), g.user, room_id, attrs)
    return jsonify({'status': 'success', 'product': product.to_dict()}), 201


@rooms_bp.route('/products/<int:product_id>', methods=['PATCH'])
@require_login
def update_product(product_id):
    payload = get_payload()
    attrs = dict(payload)
    attrs.pop('stock', None)
    if 'price' in payload:
        attrs['price'] = get_int(payload, 'price', min_value=0)
    product = product_service.update_product(get_session(), g.user, product_id, attrs)
    return jsonify({'status': 'success', 'product': product.to_dict()})


@rooms_bp.route('/products/<int:product_id>/stock', methods=['PUT'])
@require_login
def set_stock(product_id):
    stock = get_int(get_payload(), 'stock', min_value=0)
    change = product_service.set_stock(get_session(), g.user, product_id, stock)
    return jsonify({'status': 'success', 'stock': change})
