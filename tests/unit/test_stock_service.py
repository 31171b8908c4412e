"""
Unit tests for the stock reservation engine.
"""

import pytest
from roomshop.exceptions import InsufficientStockError, ValidationError
from roomshop.services import stock_service
from roomshop.services.broadcast_service import pending_events


class TestReserveRelease:
    """Tests for reserve/release bookkeeping."""

    def test_reserve_then_release_restores_stock(self, session, product, buyer):
        """Stock goes back to where it started after a matching release."""
        stock_service.reserve(session, product, 4, 'cart_reserved', actor_id=buyer.id)
        session.commit()
        assert product.stock == 6

        stock_service.release(session, product, 4, 'cart_released', actor_id=buyer.id)
        session.commit()
        assert product.stock == 10

    def test_reserve_more_than_available(self, session, product):
        """Test that over-reservation is refused and stock is untouched."""
        with pytest.raises(InsufficientStockError) as exc_info:
            stock_service.reserve(session, product, 11, 'cart_reserved')

        assert exc_info.value.available == 10
        assert exc_info.value.required == 11
        assert exc_info.value.status_code == 409
        session.rollback()
        session.refresh(product)
        assert product.stock == 10

    def test_reserve_exact_stock_reaches_zero(self, session, product):
        stock_service.reserve(session, product, 10, 'purchase')
        session.commit()
        assert product.stock == 0

        with pytest.raises(InsufficientStockError):
            stock_service.reserve(session, product, 1, 'purchase')

    def test_release_zero_is_noop(self, session, product):
        assert stock_service.release(session, product, 0, 'cart_released') is None
        assert stock_service.release(session, product, -2, 'cart_released') is None
        assert pending_events(session) == []

    def test_reserve_rejects_non_positive_quantity(self, session, product):
        with pytest.raises(ValidationError):
            stock_service.reserve(session, product, 0, 'cart_reserved')

    def test_unknown_reason_is_a_programming_error(self, session, product):
        with pytest.raises(ValueError):
            stock_service.reserve(session, product, 1, 'stolen')

    def test_adjust_reservation(self, session, product):
        """Positive deltas reserve, negative deltas release, zero does nothing."""
        change = stock_service.adjust_reservation(session, product, 3)
        assert change['reason'] == 'cart_increased'
        assert product.stock == 7

        change = stock_service.adjust_reservation(session, product, -2)
        assert change['reason'] == 'cart_decreased'
        assert product.stock == 9

        assert stock_service.adjust_reservation(session, product, 0) is None
        session.commit()

    def test_restock_sets_absolute_value(self, session, product, seller):
        change = stock_service.restock(session, product, 25, actor_id=seller.id)
        session.commit()

        assert product.stock == 25
        assert change['previous_stock'] == 10
        assert change['stock_change'] == 15
        assert change['reason'] == 'manual_update'


class TestStockEvents:
    """Tests for stock-changed event delivery."""

    def test_event_payload(self, session, product, buyer):
        change = stock_service.reserve(session, product, 2, 'cart_reserved', actor_id=buyer.id)

        assert change['product_id'] == product.id
        assert change['room_id'] == product.room_id
        assert change['previous_stock'] == 10
        assert change['new_stock'] == 8
        assert change['stock_change'] == -2
        assert change['actor_id'] == buyer.id
        session.rollback()

    def test_events_published_after_commit(self, session, product, published_events):
        stock_service.reserve(session, product, 1, 'cart_reserved')
        assert published_events == []

        session.commit()

        assert len(published_events) == 1
        event = published_events[0]
        assert event['event'] == stock_service.STOCK_UPDATED_EVENT
        assert event['channels'] == [
            'store.products', f'product.{product.id}', f'room.{product.room_id}'
        ]
        assert event['data']['new_stock'] == 9

    def test_events_discarded_on_rollback(self, session, product, published_events):
        stock_service.reserve(session, product, 1, 'cart_reserved')
        session.rollback()
        session.commit()

        assert published_events == []
        assert pending_events(session) == []
