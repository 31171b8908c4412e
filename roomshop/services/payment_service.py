"""
USD wallet and manual deposits.

Users submit a deposit they paid outside the platform; an admin approves
it (crediting ``User.balance``) or rejects it with a reason.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List
from sqlalchemy.orm import Session
from roomshop.models import Payment, User
from roomshop.exceptions import (
    RoomshopError, BusinessLogicError, NotFoundError, ValidationError, InsufficientFundsError
)
from roomshop.services.notification_service import notify_safely, send_payment_status_notification

logger = logging.getLogger(__name__)

MIN_DEPOSIT_USD = 1
MAX_DEPOSIT_USD = 10


def credit_balance(session: Session, user: User, amount) -> Decimal:
    """Atomically add ``amount`` USD to the user's balance. Flushes only."""
    amount = Decimal(str(amount))
    session.query(User).filter(User.id == user.id).update(
        {User.balance: User.balance + amount}, synchronize_session=False
    )
    session.refresh(user, attribute_names=['balance'])
    return user.balance


def debit_balance(session: Session, user: User, amount) -> Decimal:
    """
    Atomically take ``amount`` USD from the user's balance. Flushes only.

    Raises:
        InsufficientFundsError: if the balance is lower than ``amount``.
    """
    amount = Decimal(str(amount))
    updated = session.query(User).filter(
        User.id == user.id,
        User.balance >= amount
    ).update({User.balance: User.balance - amount}, synchronize_session=False)
    if updated != 1:
        current = session.query(User.balance).filter(User.id == user.id).scalar()
        raise InsufficientFundsError(amount, current)
    session.refresh(user, attribute_names=['balance'])
    return user.balance


def submit_deposit(session: Session, user: User, amount: int, transaction_id: str, phone_no: str) -> Payment:
    """Record a pending deposit for admin review."""
    if isinstance(amount, bool) or not isinstance(amount, int) or not MIN_DEPOSIT_USD <= amount <= MAX_DEPOSIT_USD:
        raise ValidationError(
            f'Deposit amount must be between ${MIN_DEPOSIT_USD} and ${MAX_DEPOSIT_USD}', field='amount'
        )
    if not transaction_id or not transaction_id.strip():
        raise ValidationError('Transaction ID is required', field='transaction_id')
    if not phone_no or len(phone_no) > 20:
        raise ValidationError('A phone number of at most 20 characters is required', field='phone_no')

    payment = Payment(
        user_id=user.id,
        amount=amount,
        currency='USD',
        payment_method='wishmoney',
        transaction_id=transaction_id.strip()[:255],
        phone_no=phone_no,
        payment_status='pending',
    )
    session.add(payment)
    session.commit()
    logger.info(f"[PAYMENT] Deposit submitted: payment_id={payment.id} user_id={user.id} amount={amount}")
    return payment


def list_pending_payments(session: Session) -> List[Payment]:
    return session.query(Payment).filter(
        Payment.payment_status == 'pending'
    ).order_by(Payment.created_at.asc(), Payment.id.asc()).all()


def list_user_payments(session: Session, user: User) -> List[Payment]:
    return session.query(Payment).filter(Payment.user_id == user.id).order_by(Payment.id.desc()).all()


def approve_payment(session: Session, payment_id: int, admin: User) -> Payment:
    """
    Approve a pending deposit and credit the user's balance.

    The payment-status notification is sent after commit; its failure is
    logged and ignored.
    """
    try:
        payment = _get_pending_payment(session, payment_id)
        payment.payment_status = 'completed'
        payment.reviewed_by = admin.id
        credit_balance(session, payment.user, payment.amount)
        session.commit()
        logger.info(f"[PAYMENT] Approved payment_id={payment.id} by admin_id={admin.id}")
    except RoomshopError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"[PAYMENT] Error approving payment_id={payment_id}: {e}")
        raise

    notify_safely(session, send_payment_status_notification, payment)
    return payment


def reject_payment(session: Session, payment_id: int, admin: User, reason: str) -> Payment:
    if not reason or not reason.strip():
        raise ValidationError('A rejection reason is required', field='reason')
    if len(reason) > 500:
        raise ValidationError('Rejection reason must be at most 500 characters', field='reason')

    try:
        payment = _get_pending_payment(session, payment_id)
        payment.payment_status = 'rejected'
        payment.reject_reason = reason.strip()
        payment.rejected_at = datetime.now()
        payment.reviewed_by = admin.id
        session.commit()
        logger.info(f"[PAYMENT] Rejected payment_id={payment.id} by admin_id={admin.id}")
    except RoomshopError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"[PAYMENT] Error rejecting payment_id={payment_id}: {e}")
        raise

    notify_safely(session, send_payment_status_notification, payment)
    return payment


def _get_pending_payment(session, payment_id):
    payment = session.query(Payment).filter(Payment.id == payment_id).with_for_update().first()
    if not payment:
        raise NotFoundError('Payment not found')
    if not payment.is_pending:
        raise BusinessLogicError('This payment has already been processed')
    return payment
