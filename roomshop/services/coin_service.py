"""
Coin ledger and rewards.

``credit`` and ``debit`` are the only writers of ``User.coins``; each
pairs an atomic counter update with exactly one CoinTransaction row in
the caller's transaction. The public operations below them commit or roll
back as a unit.
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import Dict, Any, List, Optional, Union
from flask import current_app, has_app_context
from sqlalchemy import func, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from roomshop.models import (
    User, CoinTransaction, CoinDirection, CoinSourceType, RewardClaim, UserActivity
)
from roomshop.models.reward_claim import ONCE
from roomshop.exceptions import (
    RoomshopError, BusinessLogicError, ValidationError, InsufficientCoinsError, AlreadyClaimedError
)
from roomshop.services.payment_service import debit_balance
from roomshop.metrics import coin_movements_total

logger = logging.getLogger(__name__)

ACTION_REGISTRATION = 'first_registration'
ACTION_DAILY_LOGIN = 'daily_login'
ACTION_ACTIVITY = 'activity_reward'

MIN_PURCHASE_USD = 1
MAX_PURCHASE_USD = 10
COINS_PER_USD = 100
# Bundles with bonus coins
COIN_BUNDLES = {10: 1100}

MAX_ACTIVITY_MINUTES_PER_CALL = 60

_DEFAULT_SETTINGS = {
    'COIN_REGISTRATION_REWARD': 15,
    'COIN_DAILY_LOGIN_REWARD': 5,
    'COIN_ACTIVITY_REWARD': 10,
    'COIN_ACTIVITY_MINUTES_REQUIRED': 30,
}


def _setting(key: str) -> int:
    if has_app_context():
        return current_app.config.get(key, _DEFAULT_SETTINGS[key])
    return _DEFAULT_SETTINGS[key]


def _source(source_type: Union[CoinSourceType, str]) -> CoinSourceType:
    if isinstance(source_type, CoinSourceType):
        return source_type
    try:
        return CoinSourceType(source_type)
    except ValueError:
        raise ValidationError(f'Unknown coin source type: {source_type}', field='source_type')


def _validate_amount(amount):
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError('Coin amount must be a positive whole number', field='amount')


# ---------------------------------------------------------------------------
# Ledger primitive
# ---------------------------------------------------------------------------

def credit(
    session: Session,
    user: User,
    amount: int,
    source_type: Union[CoinSourceType, str],
    action: str,
    notes: Optional[str] = None
) -> CoinTransaction:
    """Add coins to the user and append an ``in`` ledger row. Flushes only."""
    _validate_amount(amount)
    source = _source(source_type)

    session.query(User).filter(User.id == user.id).update(
        {User.coins: User.coins + amount}, synchronize_session=False
    )
    entry = CoinTransaction(
        user_id=user.id,
        direction=CoinDirection.IN,
        amount=amount,
        source_type=source,
        action=action,
        notes=notes,
    )
    session.add(entry)
    session.flush()
    session.refresh(user, attribute_names=['coins'])

    coin_movements_total.labels(direction='in', source_type=source.value).inc(amount)
    logger.info(f"[COINS] +{amount} user_id={user.id} action={action} balance={user.coins}")
    return entry


def debit(
    session: Session,
    user: User,
    amount: int,
    source_type: Union[CoinSourceType, str],
    action: str,
    notes: Optional[str] = None
) -> CoinTransaction:
    """
    Take coins from the user and append an ``out`` ledger row. Flushes only.

    Raises:
        InsufficientCoinsError: if the user has fewer than ``amount`` coins.
            No ledger row is written in that case.
    """
    _validate_amount(amount)
    source = _source(source_type)

    updated = session.query(User).filter(
        User.id == user.id,
        User.coins >= amount
    ).update({User.coins: User.coins - amount}, synchronize_session=False)

    if updated != 1:
        current = session.query(User.coins).filter(User.id == user.id).scalar() or 0
        logger.info(f"[COINS] Refused debit of {amount} for user_id={user.id}: has {current}")
        raise InsufficientCoinsError(amount, current)

    entry = CoinTransaction(
        user_id=user.id,
        direction=CoinDirection.OUT,
        amount=amount,
        source_type=source,
        action=action,
        notes=notes,
    )
    session.add(entry)
    session.flush()
    session.refresh(user, attribute_names=['coins'])

    coin_movements_total.labels(direction='out', source_type=source.value).inc(amount)
    logger.info(f"[COINS] -{amount} user_id={user.id} action={action} balance={user.coins}")
    return entry


def has_claimed_today(session: Session, user: User, action: str, today: Optional[date] = None) -> bool:
    """True if an ``in`` entry for ``action`` was recorded today."""
    today = today or date.today()
    start = datetime.combine(today, time.min)
    end = start + timedelta(days=1)
    return session.query(CoinTransaction.id).filter(
        CoinTransaction.user_id == user.id,
        CoinTransaction.action == action,
        CoinTransaction.direction == CoinDirection.IN,
        CoinTransaction.created_at >= start,
        CoinTransaction.created_at < end
    ).first() is not None


def has_claimed_ever(session: Session, user: User, action: str) -> bool:
    return session.query(CoinTransaction.id).filter(
        CoinTransaction.user_id == user.id,
        CoinTransaction.action == action,
        CoinTransaction.direction == CoinDirection.IN
    ).first() is not None


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------

def _grant_reward(session, user, action, amount, period_key, notes, already_message) -> CoinTransaction:
    try:
        entry = credit(session, user, amount, CoinSourceType.REWARD, action, notes)
        session.add(RewardClaim(user_id=user.id, action=action, period_key=period_key))
        session.flush()
        session.commit()
        return entry
    except IntegrityError:
        # A concurrent claim for the same period won the race
        session.rollback()
        raise AlreadyClaimedError(already_message)
    except RoomshopError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"[COINS] Error granting {action} to user_id={user.id}: {e}")
        raise


def claim_registration_reward(session: Session, user: User) -> CoinTransaction:
    """One-time welcome reward (all-time check, not per day)."""
    message = 'Registration reward already claimed'
    if has_claimed_ever(session, user, ACTION_REGISTRATION):
        raise AlreadyClaimedError(message)
    return _grant_reward(
        session, user, ACTION_REGISTRATION, _setting('COIN_REGISTRATION_REWARD'),
        ONCE, 'Welcome reward for registering', message
    )


def claim_daily_login(session: Session, user: User) -> CoinTransaction:
    message = 'Daily login reward already claimed today'
    if has_claimed_today(session, user, ACTION_DAILY_LOGIN):
        raise AlreadyClaimedError(message)
    return _grant_reward(
        session, user, ACTION_DAILY_LOGIN, _setting('COIN_DAILY_LOGIN_REWARD'),
        date.today().isoformat(), 'Daily login reward', message
    )


def claim_activity_reward(session: Session, user: User) -> CoinTransaction:
    message = 'Activity reward already claimed today'
    if has_claimed_today(session, user, ACTION_ACTIVITY):
        raise AlreadyClaimedError(message)

    required = _setting('COIN_ACTIVITY_MINUTES_REQUIRED')
    minutes = get_activity_minutes_today(session, user)
    if minutes < required:
        raise BusinessLogicError(
            f'You need {required} minutes of activity today to claim this reward',
            payload={'minutes_today': minutes, 'minutes_required': required}
        )
    return _grant_reward(
        session, user, ACTION_ACTIVITY, _setting('COIN_ACTIVITY_REWARD'),
        date.today().isoformat(), f'Reward for {required} minutes of activity', message
    )


def get_activity_minutes_today(session: Session, user: User) -> int:
    minutes = session.query(UserActivity.total_minutes).filter(
        UserActivity.user_id == user.id,
        UserActivity.activity_date == date.today()
    ).scalar()
    return minutes or 0


def record_activity(session: Session, user: User, minutes: int) -> Dict[str, Any]:
    """Add active minutes to today's activity row."""
    if isinstance(minutes, bool) or not isinstance(minutes, int) or not 1 <= minutes <= MAX_ACTIVITY_MINUTES_PER_CALL:
        raise ValidationError(
            f'Minutes must be between 1 and {MAX_ACTIVITY_MINUTES_PER_CALL}', field='minutes'
        )

    today = date.today()
    try:
        activity = session.query(UserActivity).filter(
            UserActivity.user_id == user.id,
            UserActivity.activity_date == today
        ).with_for_update().first()
        if not activity:
            activity = UserActivity(user_id=user.id, activity_date=today, total_minutes=0)
            session.add(activity)
        activity.total_minutes += minutes
        activity.last_activity_at = datetime.now()
        session.commit()
    except Exception:
        session.rollback()
        raise

    required = _setting('COIN_ACTIVITY_MINUTES_REQUIRED')
    return {
        'total_minutes_today': activity.total_minutes,
        'minutes_required': required,
        'activity_reward_available': (
            activity.total_minutes >= required and not has_claimed_today(session, user, ACTION_ACTIVITY)
        ),
    }


# ---------------------------------------------------------------------------
# Purchases and spending
# ---------------------------------------------------------------------------

def coins_for_usd(amount_usd: int) -> int:
    return COIN_BUNDLES.get(amount_usd, amount_usd * COINS_PER_USD)


def purchase_coins(session: Session, user: User, amount_usd: int) -> Dict[str, Any]:
    """Convert USD balance into coins."""
    if (isinstance(amount_usd, bool) or not isinstance(amount_usd, int)
            or not MIN_PURCHASE_USD <= amount_usd <= MAX_PURCHASE_USD):
        raise ValidationError(
            f'Amount must be between ${MIN_PURCHASE_USD} and ${MAX_PURCHASE_USD}', field='amount_usd'
        )

    coins = coins_for_usd(amount_usd)
    try:
        debit_balance(session, user, amount_usd)
        entry = credit(
            session, user, coins, CoinSourceType.PURCHASE,
            f'purchase_{coins}_coins', f'Purchased {coins} coins for ${amount_usd}'
        )
        session.commit()
    except RoomshopError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"[COINS] Error purchasing coins for user_id={user.id}: {e}")
        raise

    return {
        'coins_purchased': coins,
        'amount_usd': amount_usd,
        'transaction': entry.to_dict(),
        'new_coin_balance': user.coins,
        'new_balance': str(user.balance),
    }


def spend_coins(session: Session, user: User, amount: int, action: str, notes: Optional[str] = None) -> CoinTransaction:
    if not action:
        raise ValidationError('Action is required', field='action')
    try:
        entry = debit(session, user, amount, CoinSourceType.SPEND, action, notes)
        session.commit()
        return entry
    except RoomshopError:
        session.rollback()
        raise
    except Exception:
        session.rollback()
        raise


def grant_coins(session: Session, user: User, amount: int, action: str = 'system_grant',
                notes: Optional[str] = None) -> CoinTransaction:
    """System credit, e.g. support compensation."""
    try:
        entry = credit(session, user, amount, CoinSourceType.SYSTEM, action, notes)
        session.commit()
        return entry
    except Exception:
        session.rollback()
        raise


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

def _ledger_totals(session, user_id):
    total_in, total_out = session.query(
        func.coalesce(func.sum(case((CoinTransaction.direction == CoinDirection.IN, CoinTransaction.amount), else_=0)), 0),
        func.coalesce(func.sum(case((CoinTransaction.direction == CoinDirection.OUT, CoinTransaction.amount), else_=0)), 0),
    ).filter(CoinTransaction.user_id == user_id).one()
    return int(total_in), int(total_out)


def get_coin_stats(session: Session, user: User) -> Dict[str, int]:
    total_earned, total_spent = _ledger_totals(session, user.id)
    return {
        'current_balance': user.coins,
        'total_earned': total_earned,
        'total_spent': total_spent,
        'net_earned': total_earned - total_spent,
    }


def get_available_rewards(session: Session, user: User) -> List[Dict[str, Any]]:
    minutes = get_activity_minutes_today(session, user)
    required = _setting('COIN_ACTIVITY_MINUTES_REQUIRED')
    activity_claimed = has_claimed_today(session, user, ACTION_ACTIVITY)
    return [
        {
            'action': ACTION_REGISTRATION,
            'amount': _setting('COIN_REGISTRATION_REWARD'),
            'available': not has_claimed_ever(session, user, ACTION_REGISTRATION),
        },
        {
            'action': ACTION_DAILY_LOGIN,
            'amount': _setting('COIN_DAILY_LOGIN_REWARD'),
            'available': not has_claimed_today(session, user, ACTION_DAILY_LOGIN),
        },
        {
            'action': ACTION_ACTIVITY,
            'amount': _setting('COIN_ACTIVITY_REWARD'),
            'available': not activity_claimed and minutes >= required,
            'minutes_today': minutes,
            'minutes_required': required,
        },
    ]


def get_transaction_history(session: Session, user: User, page: int = 1, per_page: int = 20) -> Dict[str, Any]:
    page = max(page, 1)
    per_page = min(max(per_page, 1), 100)
    query = session.query(CoinTransaction).filter(CoinTransaction.user_id == user.id)
    total = query.count()
    items = query.order_by(CoinTransaction.id.desc()).offset((page - 1) * per_page).limit(per_page).all()
    return {
        'items': [t.to_dict() for t in items],
        'total': total,
        'page': page,
        'per_page': per_page,
    }


def reconcile_user_coins(session: Session, user: User, fix: bool = False) -> Dict[str, Any]:
    """
    Compare the cached ``User.coins`` with the ledger sum.

    With ``fix=True`` a drifting counter is reset to the ledger value.
    """
    total_in, total_out = _ledger_totals(session, user.id)
    ledger_balance = total_in - total_out
    drift = user.coins - ledger_balance
    result = {
        'user_id': user.id,
        'cached_coins': user.coins,
        'ledger_coins': ledger_balance,
        'drift': drift,
        'fixed': False,
    }
    if drift and fix:
        session.query(User).filter(User.id == user.id).update(
            {User.coins: ledger_balance}, synchronize_session=False
        )
        session.commit()
        logger.warning(f"[COINS] Reset user_id={user.id} coins {result['cached_coins']} -> {ledger_balance}")
        result['fixed'] = True
    return result
