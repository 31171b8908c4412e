"""
Room creation quota.

Each subscription tier gets a number of free rooms per calendar month;
every room beyond that costs a flat amount of coins.
"""
import logging
from datetime import date
from typing import Dict, Any, Optional
from flask import current_app, has_app_context
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from roomshop.models import User, UserRoomUsage, CoinSourceType
from roomshop.exceptions import BusinessLogicError
from roomshop.services import coin_service
from roomshop.services.subscription_service import get_effective_level

logger = logging.getLogger(__name__)

ADDITIONAL_ROOM_COST = 50

MONTHLY_ROOM_LIMITS = {
    'bronze': 2,
    'silver': 4,
    'gold': 4,
}
DEFAULT_MONTHLY_LIMIT = 2


def get_additional_room_cost() -> int:
    if has_app_context():
        return current_app.config.get('ROOM_ADDITIONAL_COST', ADDITIONAL_ROOM_COST)
    return ADDITIONAL_ROOM_COST


def get_monthly_room_limit(session: Session, user: User) -> int:
    level = get_effective_level(session, user)
    return MONTHLY_ROOM_LIMITS.get(level, DEFAULT_MONTHLY_LIMIT)


def get_current_month_usage(session: Session, user: User, today: Optional[date] = None) -> int:
    today = today or date.today()
    used = session.query(UserRoomUsage.monthly_rooms_created).filter(
        UserRoomUsage.user_id == user.id,
        UserRoomUsage.usage_year == today.year,
        UserRoomUsage.usage_month == today.month
    ).scalar()
    return used or 0


def can_create_room(session: Session, user: User) -> Dict[str, Any]:
    """
    Whether the user may create a room right now and what it would cost.

    Returns:
        Dict with can_create, is_free, rooms_used, monthly_limit and
        additional_cost; paid checks also carry user_coins and
        insufficient_coins.
    """
    limit = get_monthly_room_limit(session, user)
    used = get_current_month_usage(session, user)
    cost = get_additional_room_cost()

    if used < limit:
        return {
            'can_create': True,
            'is_free': True,
            'rooms_used': used,
            'monthly_limit': limit,
            'additional_cost': 0,
        }

    has_coins = user.coins >= cost
    return {
        'can_create': has_coins,
        'is_free': False,
        'rooms_used': used,
        'monthly_limit': limit,
        'additional_cost': cost,
        'user_coins': user.coins,
        'insufficient_coins': not has_coins,
    }


def _find_usage_row(session: Session, user: User, today: date) -> Optional[UserRoomUsage]:
    return session.query(UserRoomUsage).filter(
        UserRoomUsage.user_id == user.id,
        UserRoomUsage.usage_year == today.year,
        UserRoomUsage.usage_month == today.month
    ).with_for_update().populate_existing().first()


def _locked_usage_row(session: Session, user: User, today: date) -> UserRoomUsage:
    """
    This month's usage row for the user, locked for update.

    The first room of the month inserts the row. A concurrent request that
    inserted it first makes the unique constraint fail; that surfaces as a
    409 so the caller rolls back and the client can retry.
    """
    usage = _find_usage_row(session, user, today)
    if usage:
        return usage

    usage = UserRoomUsage(
        user_id=user.id,
        usage_year=today.year,
        usage_month=today.month,
        monthly_rooms_created=0
    )
    session.add(usage)
    try:
        session.flush()
    except IntegrityError:
        logger.warning(f"[ROOMS] Concurrent first room of the month for user_id={user.id}")
        raise BusinessLogicError('Another room is being created right now, please try again', status_code=409)
    return usage


def process_room_creation(session: Session, user: User) -> Dict[str, Any]:
    """
    Count one room against this month's quota and charge for overage.

    Whether the room is free is decided from the locked usage row, so two
    requests racing for the last free slot cannot both get it. Runs in the
    caller's transaction (flush only). A failed coin debit raises
    InsufficientCoinsError before the caller can commit, so the usage
    increment is rolled back with it.

    Returns:
        Dict with was_free, coins_spent and remaining_coins.
    """
    today = date.today()
    usage = _locked_usage_row(session, user, today)
    limit = get_monthly_room_limit(session, user)
    is_free = usage.monthly_rooms_created < limit

    coins_spent = 0
    if not is_free:
        coins_spent = get_additional_room_cost()
        coin_service.debit(
            session, user, coins_spent, CoinSourceType.SPEND, 'room_creation',
            'Additional room creation (beyond monthly limit)'
        )

    usage.monthly_rooms_created += 1
    session.flush()
    logger.info(
        f"[ROOMS] user_id={user.id} room #{usage.monthly_rooms_created} this month "
        f"(limit {limit}, coins_spent={coins_spent})"
    )
    return {
        'was_free': is_free,
        'coins_spent': coins_spent,
        'remaining_coins': user.coins,
    }


def get_room_usage_summary(session: Session, user: User) -> Dict[str, Any]:
    level = get_effective_level(session, user)
    limit = MONTHLY_ROOM_LIMITS.get(level, DEFAULT_MONTHLY_LIMIT)
    used = get_current_month_usage(session, user)
    cost = get_additional_room_cost()
    return {
        'subscription_level': level,
        'monthly_limit': limit,
        'rooms_used_this_month': used,
        'remaining_free_rooms': max(0, limit - used),
        'additional_room_cost': cost,
        'user_coins': user.coins,
        'can_create_free': used < limit,
        'can_create_paid': user.coins >= cost,
    }
