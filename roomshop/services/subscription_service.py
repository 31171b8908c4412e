"""
Subscription service - effective level resolution and paid upgrades.
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session
from roomshop.models import User, Subscription, SubscriptionLevel
from roomshop.exceptions import RoomshopError, BusinessLogicError, ValidationError
from roomshop.services.payment_service import debit_balance

logger = logging.getLogger(__name__)

# USD price of a 30 day period
SUBSCRIPTION_PRICES = {
    SubscriptionLevel.SILVER.value: Decimal('6.00'),
    SubscriptionLevel.GOLD.value: Decimal('10.00'),
}
SUBSCRIPTION_PERIOD_DAYS = 30

_LEVEL_RANK = {'bronze': 0, 'silver': 1, 'gold': 2}


def get_active_subscription(session: Session, user: User, today: Optional[date] = None) -> Optional[Subscription]:
    """Latest subscription that is flagged active and covers today."""
    today = today or date.today()
    return session.query(Subscription).filter(
        Subscription.user_id == user.id,
        Subscription.is_active.is_(True),
        Subscription.start_date <= today,
        Subscription.end_date >= today
    ).order_by(Subscription.id.desc()).first()


def get_effective_level(session: Session, user: User) -> str:
    """
    Subscription tier used for entitlement checks.

    An active Subscription row wins over the cached ``User.subscription_level``;
    bronze is the fallback.
    """
    subscription = get_active_subscription(session, user)
    if subscription:
        return subscription.level
    return user.subscription_level or SubscriptionLevel.BRONZE.value


def get_subscription_status(session: Session, user: User) -> Dict[str, Any]:
    subscription = get_active_subscription(session, user)
    return {
        'level': get_effective_level(session, user),
        'balance': str(user.balance),
        'subscription': {
            'level': subscription.level,
            'start_date': subscription.start_date.isoformat(),
            'end_date': subscription.end_date.isoformat(),
        } if subscription else None,
        'prices': {level: str(price) for level, price in SUBSCRIPTION_PRICES.items()},
    }


def upgrade(session: Session, user: User, level: str) -> Subscription:
    """
    Buy a 30 day subscription with the user's USD balance.

    Args:
        session: Database session
        user: Buyer
        level: 'silver' or 'gold'

    Returns:
        The new Subscription.
    """
    if level not in SUBSCRIPTION_PRICES:
        raise ValidationError('Level must be silver or gold', field='level')

    current_level = get_effective_level(session, user)
    if current_level == level:
        raise BusinessLogicError(f'You already have the {level} subscription')
    if _LEVEL_RANK[current_level] > _LEVEL_RANK[level]:
        raise BusinessLogicError(f'Cannot downgrade from {current_level} to {level}')

    price = SUBSCRIPTION_PRICES[level]
    today = date.today()
    try:
        debit_balance(session, user, price)

        session.query(Subscription).filter(
            Subscription.user_id == user.id,
            Subscription.is_active.is_(True)
        ).update({Subscription.is_active: False}, synchronize_session=False)

        subscription = Subscription(
            user_id=user.id,
            level=level,
            start_date=today,
            end_date=today + timedelta(days=SUBSCRIPTION_PERIOD_DAYS),
            is_active=True,
        )
        session.add(subscription)
        user.subscription_level = level
        session.commit()
    except RoomshopError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"Error upgrading subscription for user_id={user.id}: {e}")
        raise

    logger.info(f"Subscription upgraded: user_id={user.id} {current_level} -> {level}")
    return subscription
