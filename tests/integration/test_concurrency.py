"""
Integration tests for overselling protection.

A second session reads the product before another request takes the last
unit; its reservation must still be refused because the decrement is a
conditional UPDATE, not a write of a value computed from the stale read.
"""

import pytest
from sqlalchemy.orm import sessionmaker
from roomshop import database
from roomshop.models import Product, CartItem, User, UserRoomUsage
from roomshop.exceptions import InsufficientStockError, InsufficientCoinsError
from roomshop.services import cart_service, coin_service, stock_service, room_limit_service, room_service


@pytest.fixture
def second_session(app):
    other = sessionmaker(bind=database.engine, autoflush=False)()
    yield other
    other.rollback()
    other.close()


class TestStaleReads:
    """Two sessions racing for the same row."""

    def test_last_unit_cannot_be_sold_twice(self, session, second_session, buyer, other_buyer, make_product):
        product = make_product('Last One', stock=1)

        stale_product = second_session.get(Product, product.id)
        stale_buyer = second_session.get(User, other_buyer.id)
        assert stale_product.stock == 1

        cart_service.add_to_cart(session, buyer, product.id, 1)

        with pytest.raises(InsufficientStockError) as exc_info:
            stock_service.reserve(second_session, stale_product, 1, 'cart_reserved', actor_id=stale_buyer.id)
        second_session.rollback()

        assert exc_info.value.available == 0
        session.refresh(product)
        assert product.stock == 0
        assert session.query(CartItem).count() == 1

    def test_stale_coin_balance_cannot_overspend(self, session, second_session, buyer):
        coin_service.grant_coins(session, buyer, 30)
        stale_buyer = second_session.get(User, buyer.id)
        assert stale_buyer.coins == 30

        coin_service.spend_coins(session, buyer, 20, 'gift')

        with pytest.raises(InsufficientCoinsError) as exc_info:
            coin_service.debit(second_session, stale_buyer, 20, 'spend', 'gift')
        second_session.rollback()

        assert exc_info.value.current == 10
        session.refresh(buyer)
        assert buyer.coins == 10

    def test_stale_usage_row_is_reread_before_charging(self, session, second_session, make_user):
        """A session holding an old copy of the usage row still pays for the room past the quota."""
        user = make_user('Creator')
        coin_service.grant_coins(session, user, 50)
        room_service.create_room(session, user, {'name': f'One {user.id}'})

        stale_user = second_session.get(User, user.id)
        stale_usage = second_session.query(UserRoomUsage).filter_by(user_id=user.id).one()
        assert stale_usage.monthly_rooms_created == 1

        room_service.create_room(session, user, {'name': f'Two {user.id}'})

        cost_info = room_limit_service.process_room_creation(second_session, stale_user)
        second_session.commit()

        assert cost_info['was_free'] is False
        assert cost_info['coins_spent'] == 50
        assert room_limit_service.get_current_month_usage(session, user) == 3
        session.refresh(user)
        assert user.coins == 0
