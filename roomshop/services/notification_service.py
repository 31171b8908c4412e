"""
In-app notifications.

Notifications are a side effect: senders write a Notification row and
queue a broadcast, and callers go through ``notify_safely`` so a failure
here never undoes the operation that triggered it.
"""
import json
import logging
from typing import Callable, Dict, Any, Optional
from sqlalchemy.orm import Session
from roomshop.models import Notification, Order, Payment
from roomshop.exceptions import NotFoundError
from roomshop.services.broadcast_service import queue_event

logger = logging.getLogger(__name__)

NOTIFICATION_EVENT = 'notification.created'


def notify_safely(session: Session, sender: Callable, *args, **kwargs) -> Optional[Notification]:
    """
    Run a notification sender in its own transaction.

    Must be called after the triggering operation has committed. Any error
    is logged and rolled back; None is returned in that case.
    """
    try:
        notification = sender(session, *args, **kwargs)
        session.commit()
        return notification
    except Exception as e:
        session.rollback()
        logger.error(f"[NOTIFY] {getattr(sender, '__name__', sender)} failed: {e}")
        return None


def create_notification(
    session: Session,
    user_id: int,
    type: str,
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
    action_url: Optional[str] = None,
    related_user_id: Optional[int] = None
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        data=json.dumps(data, default=str) if data else None,
        action_url=action_url,
        related_user_id=related_user_id,
    )
    session.add(notification)
    session.flush()
    queue_event(session, [f'user.{user_id}.notifications'], NOTIFICATION_EVENT, notification.to_dict())
    return notification


def send_order_placed_notification(session: Session, order: Order) -> Notification:
    """Tell the seller a new order (or order batch) arrived."""
    product = order.product
    seller_id = product.seller_id
    data = {
        'order_id': order.id,
        'product_id': product.id,
        'product_name': product.name,
        'buyer_id': order.buyer_id,
        'quantity': order.quantity,
        'total_price': order.total_price,
        'placed_from': order.placed_from.value,
        'batch_id': order.batch_id,
    }
    if order.children:
        data['items_count'] = 1 + len(order.children)
        message = f'{order.buyer.name} placed an order for {data["items_count"]} products'
    else:
        message = f'{order.buyer.name} ordered {order.quantity} x {product.name}'

    return create_notification(
        session,
        user_id=seller_id,
        type='order_placed',
        title='New Order',
        message=message,
        data=data,
        action_url=f'/orders/{order.id}',
        related_user_id=order.buyer_id,
    )


def send_order_status_notification(session: Session, order: Order) -> Notification:
    """Tell the buyer their order moved to a new status."""
    status = order.status.value
    return create_notification(
        session,
        user_id=order.buyer_id,
        type='order_status',
        title='Order Update',
        message=f'Your order #{order.id} for {order.product.name} is now {status}',
        data={'order_id': order.id, 'status': status, 'batch_id': order.batch_id},
        action_url=f'/orders/{order.id}',
        related_user_id=order.product.seller_id,
    )


def send_payment_status_notification(session: Session, payment: Payment) -> Notification:
    if payment.payment_status == 'completed':
        title = 'Payment Approved'
        message = f'Your deposit of ${payment.amount} was approved and added to your balance'
    elif payment.payment_status == 'rejected':
        title = 'Payment Rejected'
        message = f'Your deposit of ${payment.amount} was rejected'
        if payment.reject_reason:
            message += f': {payment.reject_reason}'
    else:
        title = 'Payment Update'
        message = f'Your deposit of ${payment.amount} is {payment.payment_status}'

    return create_notification(
        session,
        user_id=payment.user_id,
        type='payment_status',
        title=title,
        message=message,
        data={
            'payment_id': payment.id,
            'amount': payment.amount,
            'status': payment.payment_status,
            'reject_reason': payment.reject_reason,
        },
        action_url='/wallet',
    )


def list_notifications(session: Session, user, unread_only: bool = False, limit: int = 50):
    query = session.query(Notification).filter(Notification.user_id == user.id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.id.desc()).limit(limit).all()


def get_unread_count(session: Session, user) -> int:
    return session.query(Notification).filter(
        Notification.user_id == user.id,
        Notification.is_read.is_(False)
    ).count()


def mark_as_read(session: Session, user, notification_id: int) -> Notification:
    notification = session.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user.id
    ).first()
    if not notification:
        raise NotFoundError('Notification not found')
    notification.is_read = True
    session.commit()
    return notification


def mark_all_as_read(session: Session, user) -> int:
    updated = session.query(Notification).filter(
        Notification.user_id == user.id,
        Notification.is_read.is_(False)
    ).update({Notification.is_read: True}, synchronize_session=False)
    session.commit()
    return updated
