"""
Stock reservation engine.

The only module allowed to write ``Product.stock``. Every function runs in
the caller's transaction: it flushes but never commits, so a rollback in
the caller undoes every stock change made on its behalf.

Decrements are a single conditional UPDATE (``stock = stock - :qty WHERE
stock >= :qty``) whose row count is checked, so two requests that read
the same stale value cannot both succeed.
"""
import logging
from datetime import datetime
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session
from roomshop.models import Product
from roomshop.exceptions import InsufficientStockError, NotFoundError, ValidationError
from roomshop.services.broadcast_service import queue_event
from roomshop.metrics import stock_movements_total, insufficient_stock_total

logger = logging.getLogger(__name__)

STOCK_UPDATED_EVENT = 'product.stock.updated'

# Reasons carried by stock-changed events
STOCK_REASONS = frozenset({
    'cart_reserved',
    'cart_increased',
    'cart_decreased',
    'cart_released',
    'cart_cleared',
    'purchase',
    'rejected',
    'cancelled',
    'manual_update',
})


def reserve(
    session: Session,
    product: Product,
    qty: int,
    reason: str,
    order_id: Optional[int] = None,
    actor_id: Optional[int] = None
) -> Dict[str, Any]:
    """
    Take ``qty`` units out of the product's available stock.

    Args:
        session: Database session (caller owns the transaction)
        product: Product to reserve from
        qty: Positive number of units
        reason: One of STOCK_REASONS
        order_id: Order the reservation belongs to, if any
        actor_id: User performing the action

    Returns:
        The stock-changed event payload.

    Raises:
        InsufficientStockError: if fewer than ``qty`` units are available.
    """
    _validate_quantity(qty)
    _validate_reason(reason)

    updated = session.query(Product).filter(
        Product.id == product.id,
        Product.stock >= qty
    ).update({Product.stock: Product.stock - qty}, synchronize_session=False)

    if updated != 1:
        available = _current_stock(session, product.id)
        if available is None:
            raise NotFoundError('Product not found')
        insufficient_stock_total.inc()
        logger.info(
            f"[STOCK] Refused reservation: product_id={product.id} "
            f"requested={qty} available={available} reason={reason}"
        )
        raise InsufficientStockError(product.name, qty, available)

    stock_movements_total.labels(direction='out', reason=reason).inc(qty)
    return _record_change(session, product, -qty, reason, order_id, actor_id)


def release(
    session: Session,
    product: Product,
    qty: int,
    reason: str,
    order_id: Optional[int] = None,
    actor_id: Optional[int] = None
) -> Optional[Dict[str, Any]]:
    """
    Give ``qty`` previously reserved units back to the product.

    Releasing zero or a negative amount is a no-op and returns None.
    """
    _validate_reason(reason)
    if qty is None or qty <= 0:
        return None

    updated = session.query(Product).filter(
        Product.id == product.id
    ).update({Product.stock: Product.stock + qty}, synchronize_session=False)

    if updated != 1:
        raise NotFoundError('Product not found')

    stock_movements_total.labels(direction='in', reason=reason).inc(qty)
    return _record_change(session, product, qty, reason, order_id, actor_id)


def adjust_reservation(
    session: Session,
    product: Product,
    delta: int,
    reason: Optional[str] = None,
    order_id: Optional[int] = None,
    actor_id: Optional[int] = None
) -> Optional[Dict[str, Any]]:
    """
    Grow (delta > 0) or shrink (delta < 0) an existing reservation.

    Defaults to the cart reasons ``cart_increased`` / ``cart_decreased``.
    """
    if delta > 0:
        return reserve(session, product, delta, reason or 'cart_increased', order_id, actor_id)
    if delta < 0:
        return release(session, product, -delta, reason or 'cart_decreased', order_id, actor_id)
    return None


def restock(session: Session, product: Product, new_stock: int, actor_id: Optional[int] = None) -> Dict[str, Any]:
    """Set the available stock to an absolute value (seller's manual update)."""
    if isinstance(new_stock, bool) or not isinstance(new_stock, int) or new_stock < 0:
        raise ValidationError('Stock must be a whole number of zero or more', field='stock')

    previous = session.query(Product.stock).filter(
        Product.id == product.id
    ).with_for_update().scalar()
    if previous is None:
        raise NotFoundError('Product not found')

    session.query(Product).filter(
        Product.id == product.id
    ).update({Product.stock: new_stock}, synchronize_session=False)

    delta = new_stock - previous
    if delta:
        stock_movements_total.labels(
            direction='in' if delta > 0 else 'out', reason='manual_update'
        ).inc(abs(delta))
    return _record_change(session, product, delta, 'manual_update', None, actor_id)


def _record_change(session, product, delta, reason, order_id, actor_id) -> Dict[str, Any]:
    """Sync the in-memory product and queue the stock-changed event."""
    session.refresh(product, attribute_names=['stock'])
    new_stock = product.stock
    payload = {
        'product_id': product.id,
        'room_id': product.room_id,
        'name': product.name,
        'price': product.price,
        'status': product.status,
        'previous_stock': new_stock - delta,
        'new_stock': new_stock,
        'stock_change': delta,
        'reason': reason,
        'related_order_id': order_id,
        'actor_id': actor_id,
        'timestamp': datetime.now().isoformat(),
    }
    queue_event(
        session,
        ['store.products', f'product.{product.id}', f'room.{product.room_id}'],
        STOCK_UPDATED_EVENT,
        payload
    )
    logger.info(
        f"[STOCK] product_id={product.id} {payload['previous_stock']} -> {new_stock} "
        f"({delta:+d}) reason={reason} order_id={order_id} actor_id={actor_id}"
    )
    return payload


def _current_stock(session, product_id):
    return session.query(Product.stock).filter(Product.id == product_id).scalar()


def _validate_quantity(qty):
    if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
        raise ValidationError('Quantity must be a positive whole number', field='quantity')


def _validate_reason(reason):
    if reason not in STOCK_REASONS:
        raise ValueError(f'Unknown stock change reason: {reason}')
