"""
Order service - direct purchases and the order status machine.

Orders from a multi-product checkout form a batch (a main order plus
child orders pointing to it). ``OrderBatch`` loads and locks the whole
batch so every status change applies to all of its lines at once.
"""
import logging
from typing import Dict, Any, List, Union
from sqlalchemy import or_
from sqlalchemy.orm import Session
from roomshop.models import User, Product, Room, Order, OrderStatus
from roomshop.exceptions import (
    RoomshopError, NotFoundError, UnauthorizedError, ValidationError,
    InvalidTransitionError, NotCancellableError
)
from roomshop.services import stock_service
from roomshop.services.cart_service import get_purchasable_product, validate_shipping
from roomshop.services.notification_service import (
    notify_safely, send_order_placed_notification, send_order_status_notification
)
from roomshop.metrics import orders_placed_total, order_transitions_total

logger = logging.getLogger(__name__)


class OrderBatch:
    """
    A main order and its child orders, moved through one state machine.

    A standalone order is a batch of one.
    """

    def __init__(self, main: Order, children: List[Order]):
        self.main = main
        self.children = children

    @classmethod
    def load(cls, session: Session, order_id: int) -> 'OrderBatch':
        """Load the batch containing ``order_id`` with its rows locked for update."""
        order = session.get(Order, order_id)
        if not order:
            raise NotFoundError('Order not found')

        main_id = order.parent_order_id or order.id
        rows = session.query(Order).filter(
            or_(Order.id == main_id, Order.parent_order_id == main_id)
        ).order_by(Order.id).with_for_update().populate_existing().all()

        main = next(row for row in rows if row.id == main_id)
        children = [row for row in rows if row.id != main_id]
        return cls(main, children)

    @property
    def lines(self) -> List[Order]:
        return [self.main] + self.children

    @property
    def status(self) -> OrderStatus:
        return self.main.status

    @property
    def buyer_id(self) -> int:
        return self.main.buyer_id

    @property
    def seller_id(self) -> int:
        return self.main.product.seller_id

    def transition(self, session: Session, new_status: OrderStatus, actor_id: int) -> None:
        """Apply a seller transition to every line of the batch."""
        if not self.main.can_transition_to(new_status):
            raise InvalidTransitionError(self.status.value, new_status.value)
        self._apply(session, new_status, actor_id)

    def cancel(self, session: Session, actor_id: int) -> None:
        """Buyer cancellation, allowed while pending or accepted."""
        if not self.main.can_be_cancelled:
            raise NotCancellableError(self.status.value)
        self._apply(session, OrderStatus.CANCELLED, actor_id)

    def _apply(self, session, new_status, actor_id):
        for line in self.lines:
            if new_status.releases_stock:
                # each line may reference a different product
                stock_service.release(
                    session, line.product, line.quantity, new_status.value,
                    order_id=line.id, actor_id=actor_id
                )
            line.status = new_status
        session.flush()
        order_transitions_total.labels(status=new_status.value).inc()

    def to_dict(self) -> Dict[str, Any]:
        return self.main.to_dict(include_children=True)


def _parse_status(value: Union[OrderStatus, str]) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError(
            'Status must be one of: ' + ', '.join(s.value for s in OrderStatus), field='status'
        )


def place_direct_order(
    session: Session,
    buyer: User,
    product_id: int,
    qty: int,
    shipping: Dict[str, Any]
) -> Order:
    """
    Buy a product without going through the cart.

    Stock is reserved fresh with reason ``purchase``. The seller
    notification is sent after commit and cannot fail the order.
    """
    if isinstance(qty, bool) or not isinstance(qty, int) or qty < 1:
        raise ValidationError('Quantity must be at least 1', field='quantity')
    shipping = validate_shipping(shipping)

    try:
        product = get_purchasable_product(session, buyer, product_id)
        order = Order(
            product_id=product.id,
            buyer_id=buyer.id,
            quantity=qty,
            total_price=product.price * qty,
            status=OrderStatus.PENDING,
            **shipping
        )
        session.add(order)
        session.flush()
        stock_service.reserve(session, product, qty, 'purchase', order_id=order.id, actor_id=buyer.id)
        session.commit()

    except RoomshopError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"[ORDER] Direct order failed for buyer_id={buyer.id} product_id={product_id}: {e}")
        raise

    orders_placed_total.labels(source='direct').inc()
    logger.info(f"[ORDER] Direct order {order.id}: buyer_id={buyer.id} product_id={product_id} qty={qty}")
    notify_safely(session, send_order_placed_notification, order)
    return order


def update_status(
    session: Session,
    order_id: int,
    new_status: Union[OrderStatus, str],
    acting_user: User
) -> OrderBatch:
    """
    Seller moves an order batch to ``new_status``.

    Rejection and cancellation give every line's quantity back to its
    product. The whole batch changes or nothing does.
    """
    new_status = _parse_status(new_status)
    try:
        batch = OrderBatch.load(session, order_id)
        if batch.seller_id != acting_user.id:
            raise UnauthorizedError()
        previous = batch.status
        batch.transition(session, new_status, acting_user.id)
        session.commit()

    except RoomshopError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"[ORDER] Status update failed for order_id={order_id}: {e}")
        raise

    logger.info(
        f"[ORDER] Batch of order {batch.main.id} ({len(batch.lines)} line(s)) "
        f"{previous.value} -> {new_status.value} by user_id={acting_user.id}"
    )
    notify_safely(session, send_order_status_notification, batch.main)
    return batch


def cancel_order(session: Session, order_id: int, acting_user: User) -> OrderBatch:
    """Buyer cancels an order batch and its stock is released."""
    try:
        batch = OrderBatch.load(session, order_id)
        if batch.buyer_id != acting_user.id:
            raise UnauthorizedError()
        batch.cancel(session, acting_user.id)
        session.commit()

    except RoomshopError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"[ORDER] Cancel failed for order_id={order_id}: {e}")
        raise

    logger.info(f"[ORDER] Batch of order {batch.main.id} cancelled by buyer_id={acting_user.id}")
    return batch


def list_orders(session: Session, user: User) -> Dict[str, List[Dict[str, Any]]]:
    """Main orders where the user is the buyer or the seller, children nested."""
    as_buyer = session.query(Order).filter(
        Order.buyer_id == user.id,
        Order.parent_order_id.is_(None)
    ).order_by(Order.id.desc()).all()

    as_seller = session.query(Order).join(Product, Order.product_id == Product.id).join(
        Room, Product.room_id == Room.id
    ).filter(
        Room.owner_id == user.id,
        Order.parent_order_id.is_(None)
    ).order_by(Order.id.desc()).all()

    return {
        'purchases': [order.to_dict(include_children=True) for order in as_buyer],
        'sales': [order.to_dict(include_children=True) for order in as_seller],
    }


def get_order(session: Session, order_id: int, user: User) -> Order:
    """Order visible to its buyer and its seller only."""
    order = session.get(Order, order_id)
    if not order:
        raise NotFoundError('Order not found')
    if user.id not in (order.buyer_id, order.product.seller_id):
        raise UnauthorizedError()
    return order
