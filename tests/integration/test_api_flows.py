"""
Integration tests for the JSON API: cart to checkout to fulfilment.
"""

from roomshop.metrics import registry
from roomshop.models import Product, Order, OrderStatus, Payment


class TestAuthentication:
    """Test endpoints require a logged-in user."""

    def test_cart_requires_login(self, client):
        response = client.get('/api/cart')

        assert response.status_code == 401
        assert response.get_json()['error'] == 'not_authenticated'

    def test_admin_routes_require_admin(self, login, buyer):
        client = login(buyer)

        response = client.get('/api/admin/payments/pending')

        assert response.status_code == 403
        assert response.get_json()['error'] == 'not_authorized'

    def test_csrf_token_endpoint(self, client):
        response = client.get('/api/csrf-token')

        assert response.status_code == 200
        assert 'csrf_token' in response.get_json()


class TestCartToDeliveryFlow:
    """Full purchase flow through the HTTP layer."""

    def test_cart_checkout_and_fulfilment(self, session, login, buyer, seller, product, second_product, shipping):
        product_id, second_id = product.id, second_product.id
        client = login(buyer)

        response = client.post('/api/cart', json={'product_id': product_id, 'quantity': 2})
        assert response.status_code == 201
        assert response.get_json()['cart_item']['reserved_stock'] == 2

        response = client.post('/api/cart', json={'product_id': second_id, 'quantity': 1})
        assert response.status_code == 201

        response = client.get('/api/cart/count')
        assert response.get_json()['count'] == 3

        response = client.post('/api/cart/checkout', json=shipping)
        assert response.status_code == 201
        data = response.get_json()
        assert data['total_orders'] == 1
        assert data['total_amount'] == 2 * 500 + 300
        main_order_id = data['main_order_id']

        assert session.get(Product, product_id).stock == 8
        assert session.get(Product, second_id).stock == 4

        client = login(seller)
        response = client.patch(f'/api/orders/{main_order_id}/status', json={'status': 'accepted'})
        assert response.status_code == 200
        order = response.get_json()['order']
        assert order['status'] == 'accepted'
        assert [child['status'] for child in order['child_orders']] == ['accepted']

        response = client.patch(f'/api/orders/{main_order_id}/status', json={'status': 'delivered'})
        assert response.status_code == 200

        statuses = {o.status for o in session.query(Order).all()}
        assert statuses == {OrderStatus.DELIVERED}

    def test_direct_order_and_rejection(self, session, login, buyer, seller, product, shipping):
        product_id = product.id
        client = login(buyer)

        response = client.post('/api/orders', json={'product_id': product_id, 'quantity': 3, **shipping})
        assert response.status_code == 201
        order_id = response.get_json()['order']['id']
        assert session.get(Product, product_id).stock == 7

        client = login(seller)
        response = client.post(f'/api/orders/{order_id}/status', json={'status': 'rejected'})
        assert response.status_code == 200
        assert session.get(Product, product_id).stock == 10

    def test_buyer_cancels(self, session, login, buyer, product, shipping):
        product_id = product.id
        client = login(buyer)
        order_id = client.post(
            '/api/orders', json={'product_id': product_id, 'quantity': 2, **shipping}
        ).get_json()['order']['id']

        response = client.post(f'/api/orders/{order_id}/cancel')

        assert response.status_code == 200
        assert response.get_json()['order']['status'] == 'cancelled'
        assert session.get(Product, product_id).stock == 10


class TestErrorResponses:
    """Test business errors are rendered as JSON with a machine-readable kind."""

    def test_insufficient_stock(self, login, buyer, product):
        client = login(buyer)

        response = client.post('/api/cart', json={'product_id': product.id, 'quantity': 50})

        assert response.status_code == 409
        data = response.get_json()
        assert data['status'] == 'error'
        assert data['error'] == 'insufficient_stock'
        assert data['available'] == 10
        assert data['requested'] == 50

    def test_self_purchase(self, login, seller, product):
        client = login(seller)

        response = client.post('/api/cart', json={'product_id': product.id, 'quantity': 1})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'self_purchase'

    def test_empty_cart_checkout(self, login, buyer, shipping):
        client = login(buyer)
        response = client.post('/api/cart/checkout', json=shipping)

        assert response.status_code == 400
        assert response.get_json()['error'] == 'empty_cart'

    def test_invalid_quantity(self, login, buyer, product):
        response = login(buyer).post('/api/cart', json={'product_id': product.id, 'quantity': 'lots'})

        assert response.status_code == 422
        data = response.get_json()
        assert data['error'] == 'validation_error'
        assert data['field'] == 'quantity'

    def test_invalid_transition(self, login, buyer, seller, product, shipping):
        order_id = login(buyer).post(
            '/api/orders', json={'product_id': product.id, 'quantity': 1, **shipping}
        ).get_json()['order']['id']

        response = login(seller).patch(f'/api/orders/{order_id}/status', json={'status': 'delivered'})

        assert response.status_code == 400
        data = response.get_json()
        assert data['error'] == 'invalid_transition'
        assert data['current_status'] == 'pending'

    def test_unknown_route(self, client):
        response = client.get('/api/nothing-here')

        assert response.status_code == 404
        assert response.get_json()['error'] == 'not_found'


class TestRoomsAndCoins:
    """Room quota and coin endpoints."""

    def test_room_creation_and_usage(self, login, make_user):
        user = make_user('Creator')
        client = login(user)

        for i in range(2):
            response = client.post('/api/rooms', json={'name': f'API Room {user.id}-{i}'})
            assert response.status_code == 201
            assert response.get_json()['cost_info']['was_free'] is True

        response = client.post('/api/rooms', json={'name': f'API Room {user.id}-paid'})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'insufficient_coins'

        usage = client.get('/api/rooms/usage').get_json()
        assert usage['usage']['rooms_used_this_month'] == 2
        assert usage['can_create']['can_create'] is False

    def test_daily_login_reward(self, app, login, buyer):
        client = login(buyer)

        response = client.post('/api/coins/rewards/daily-login')
        assert response.status_code == 200

        response = client.post('/api/coins/rewards/daily-login')
        assert response.status_code == 400
        assert response.get_json()['error'] == 'already_claimed'

        balance = client.get('/api/coins/balance').get_json()
        assert balance['current_balance'] == app.config['COIN_DAILY_LOGIN_REWARD']

    def test_seller_manages_stock(self, session, login, seller, room, published_events):
        client = login(seller)

        response = client.post(f'/api/rooms/{room.id}/products', json={'name': 'Lamp', 'price': 900, 'stock': 4})
        assert response.status_code == 201
        product_id = response.get_json()['product']['id']

        response = client.put(f'/api/products/{product_id}/stock', json={'stock': 12})
        assert response.status_code == 200
        assert response.get_json()['stock']['previous_stock'] == 4
        assert session.get(Product, product_id).stock == 12
        reasons = [e['data']['reason'] for e in published_events if e['event'] == 'product.stock.updated']
        assert reasons == ['manual_update', 'manual_update']


class TestDepositFlow:
    """Deposit submission and admin review."""

    def test_deposit_approval(self, session, login, other_buyer, admin):
        client = login(other_buyer)
        response = client.post('/api/payments', json={
            'amount': 5, 'transaction_id': 'WM-555', 'phone_no': '+96171111111'
        })
        assert response.status_code == 201
        payment_id = response.get_json()['payment']['id']

        client = login(admin)
        pending = client.get('/api/admin/payments/pending').get_json()['payments']
        assert [p['id'] for p in pending] == [payment_id]

        response = client.post(f'/api/admin/payments/{payment_id}/approve')
        assert response.status_code == 200
        assert session.get(Payment, payment_id).payment_status == 'completed'


class TestMetricsEndpoint:
    def test_metrics_exposes_business_counters(self, client):
        response = client.get('/metrics')

        assert response.status_code == 200
        assert b'roomshop_stock_movements_total' in response.data

    def test_service_counters_are_exported(self, login, buyer, product):
        labels = {'direction': 'out', 'reason': 'cart_reserved'}
        before = registry.get_sample_value('roomshop_stock_movements_total', labels) or 0

        client = login(buyer)
        response = client.post('/api/cart', json={'product_id': product.id, 'quantity': 2})

        assert response.status_code == 201
        assert registry.get_sample_value('roomshop_stock_movements_total', labels) == before + 2
        exposition = client.get('/metrics').data.decode()
        assert 'roomshop_stock_movements_total{direction="out",reason="cart_reserved"}' in exposition
