"""
Unit tests for the coin ledger and rewards.
"""

import pytest
from decimal import Decimal
from roomshop.models import CoinTransaction, CoinDirection, CoinSourceType, RewardClaim
from roomshop.exceptions import (
    InsufficientCoinsError, InsufficientFundsError, AlreadyClaimedError, BusinessLogicError, ValidationError
)
from roomshop.services import coin_service


def _ledger_sum(session, user):
    rows = session.query(CoinTransaction).filter_by(user_id=user.id).all()
    return sum(row.signed_amount for row in rows)


class TestLedger:
    """Tests for credit/debit bookkeeping."""

    def test_balance_matches_ledger(self, session, buyer):
        coin_service.grant_coins(session, buyer, 100)
        coin_service.spend_coins(session, buyer, 30, 'gift')
        coin_service.spend_coins(session, buyer, 20, 'boost')

        assert buyer.coins == 50
        assert _ledger_sum(session, buyer) == buyer.coins

    def test_failed_debit_writes_nothing(self, session, buyer):
        coin_service.grant_coins(session, buyer, 10)

        with pytest.raises(InsufficientCoinsError) as exc_info:
            coin_service.spend_coins(session, buyer, 11, 'gift')

        assert exc_info.value.required == 11
        assert exc_info.value.current == 10
        assert buyer.coins == 10
        assert session.query(CoinTransaction).filter_by(
            user_id=buyer.id, direction=CoinDirection.OUT
        ).count() == 0

    def test_debit_exact_balance(self, session, buyer):
        coin_service.grant_coins(session, buyer, 10)
        coin_service.spend_coins(session, buyer, 10, 'gift')

        assert buyer.coins == 0

    def test_amount_must_be_positive(self, session, buyer):
        with pytest.raises(ValidationError):
            coin_service.grant_coins(session, buyer, 0)
        with pytest.raises(ValidationError):
            coin_service.spend_coins(session, buyer, -5, 'gift')

    def test_coin_stats(self, session, buyer):
        coin_service.grant_coins(session, buyer, 40)
        coin_service.spend_coins(session, buyer, 15, 'gift')

        stats = coin_service.get_coin_stats(session, buyer)

        assert stats == {
            'current_balance': 25,
            'total_earned': 40,
            'total_spent': 15,
            'net_earned': 25,
        }

    def test_history_is_paginated_newest_first(self, session, buyer):
        for amount in (1, 2, 3):
            coin_service.grant_coins(session, buyer, amount)

        history = coin_service.get_transaction_history(session, buyer, page=1, per_page=2)

        assert history['total'] == 3
        assert [item['amount'] for item in history['items']] == [3, 2]


class TestRewards:
    """Tests for daily and one-time rewards."""

    def test_daily_login_once_per_day(self, app, session, buyer):
        coin_service.claim_daily_login(session, buyer)

        with pytest.raises(AlreadyClaimedError):
            coin_service.claim_daily_login(session, buyer)

        assert buyer.coins == app.config['COIN_DAILY_LOGIN_REWARD']
        assert session.query(CoinTransaction).filter_by(
            user_id=buyer.id, action=coin_service.ACTION_DAILY_LOGIN
        ).count() == 1

    def test_registration_reward_once_ever(self, app, session, buyer):
        entry = coin_service.claim_registration_reward(session, buyer)

        assert entry.source_type == CoinSourceType.REWARD
        assert buyer.coins == app.config['COIN_REGISTRATION_REWARD']
        with pytest.raises(AlreadyClaimedError):
            coin_service.claim_registration_reward(session, buyer)

    def test_concurrent_claim_caught_by_unique_constraint(self, session, buyer):
        """A claim row recorded by another request makes the grant fail as already claimed."""
        session.add(RewardClaim(user_id=buyer.id, action=coin_service.ACTION_REGISTRATION, period_key='once'))
        session.commit()

        with pytest.raises(AlreadyClaimedError):
            coin_service.claim_registration_reward(session, buyer)

        assert buyer.coins == 0
        assert session.query(CoinTransaction).filter_by(user_id=buyer.id).count() == 0

    def test_activity_reward_needs_minutes(self, session, buyer):
        coin_service.record_activity(session, buyer, 20)

        with pytest.raises(BusinessLogicError) as exc_info:
            coin_service.claim_activity_reward(session, buyer)
        assert exc_info.value.payload['minutes_today'] == 20

    def test_activity_reward_after_enough_minutes(self, app, session, buyer):
        coin_service.record_activity(session, buyer, 20)
        status = coin_service.record_activity(session, buyer, 15)

        assert status['total_minutes_today'] == 35
        assert status['activity_reward_available'] is True

        coin_service.claim_activity_reward(session, buyer)

        assert buyer.coins == app.config['COIN_ACTIVITY_REWARD']
        with pytest.raises(AlreadyClaimedError):
            coin_service.claim_activity_reward(session, buyer)

    def test_record_activity_bounds(self, session, buyer):
        with pytest.raises(ValidationError):
            coin_service.record_activity(session, buyer, 0)
        with pytest.raises(ValidationError):
            coin_service.record_activity(session, buyer, 61)

    def test_available_rewards(self, session, buyer):
        coin_service.claim_daily_login(session, buyer)

        rewards = {r['action']: r for r in coin_service.get_available_rewards(session, buyer)}

        assert rewards[coin_service.ACTION_REGISTRATION]['available'] is True
        assert rewards[coin_service.ACTION_DAILY_LOGIN]['available'] is False
        assert rewards[coin_service.ACTION_ACTIVITY]['available'] is False


class TestPurchaseCoins:
    """Tests for buying coins with the USD balance."""

    def test_purchase_debits_balance(self, session, buyer):
        result = coin_service.purchase_coins(session, buyer, 5)

        assert result['coins_purchased'] == 500
        assert buyer.coins == 500
        assert buyer.balance == Decimal('15.00')
        assert result['transaction']['source_type'] == 'purchase'

    def test_ten_dollar_bundle(self, session, buyer):
        result = coin_service.purchase_coins(session, buyer, 10)

        assert result['coins_purchased'] == 1100

    def test_insufficient_balance(self, session, make_user):
        poor = make_user('Poor', balance=2)

        with pytest.raises(InsufficientFundsError):
            coin_service.purchase_coins(session, poor, 3)

        assert poor.coins == 0
        assert poor.balance == Decimal('2.00')

    def test_amount_out_of_range(self, session, buyer):
        with pytest.raises(ValidationError):
            coin_service.purchase_coins(session, buyer, 11)


class TestReconcile:
    """Tests for cached balance vs ledger reconciliation."""

    def test_consistent_user_has_no_drift(self, session, buyer):
        coin_service.grant_coins(session, buyer, 20)

        result = coin_service.reconcile_user_coins(session, buyer)

        assert result['drift'] == 0
        assert result['fixed'] is False

    def test_drift_is_reported_and_fixed(self, session, buyer):
        coin_service.grant_coins(session, buyer, 20)
        buyer.coins = 35
        session.commit()

        result = coin_service.reconcile_user_coins(session, buyer, fix=True)

        assert result['drift'] == 15
        assert result['ledger_coins'] == 20
        assert result['fixed'] is True
        session.refresh(buyer)
        assert buyer.coins == 20
