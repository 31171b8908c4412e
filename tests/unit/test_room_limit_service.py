"""
Unit tests for monthly room quotas and room creation.
"""

import pytest
from datetime import date, timedelta
from roomshop.models import Room, RoomMember, CoinTransaction, CoinDirection, Subscription, UserRoomUsage
from roomshop.exceptions import InsufficientCoinsError, ValidationError, BusinessLogicError
from roomshop.services import coin_service, room_limit_service, room_service, subscription_service


def _create_rooms(session, user, count, prefix='Room'):
    results = []
    for i in range(count):
        results.append(room_service.create_room(session, user, {'name': f'{prefix} {user.id}-{i}'}))
    return results


class TestQuota:
    """Tests for the monthly free quota and paid overage."""

    def test_bronze_gets_two_free_rooms(self, session, make_user):
        user = make_user('Creator')

        results = _create_rooms(session, user, 2)

        assert all(r['cost_info']['was_free'] for r in results)
        assert room_limit_service.get_current_month_usage(session, user) == 2
        check = room_limit_service.can_create_room(session, user)
        assert check['is_free'] is False
        assert check['can_create'] is False
        assert check['insufficient_coins'] is True

    def test_overage_with_49_coins_is_refused(self, session, make_user):
        user = make_user('Creator')
        coin_service.grant_coins(session, user, 49)
        _create_rooms(session, user, 2)

        with pytest.raises(InsufficientCoinsError):
            room_service.create_room(session, user, {'name': f'Third {user.id}'})

        assert user.coins == 49
        assert room_limit_service.get_current_month_usage(session, user) == 2
        assert session.query(Room).filter_by(owner_id=user.id).count() == 2

    def test_overage_with_50_coins_is_charged(self, session, make_user):
        user = make_user('Creator')
        coin_service.grant_coins(session, user, 50)
        _create_rooms(session, user, 2)

        result = room_service.create_room(session, user, {'name': f'Third {user.id}'})

        assert result['cost_info'] == {'was_free': False, 'coins_spent': 50, 'remaining_coins': 0}
        assert user.coins == 0
        assert room_limit_service.get_current_month_usage(session, user) == 3
        debit = session.query(CoinTransaction).filter_by(
            user_id=user.id, direction=CoinDirection.OUT
        ).one()
        assert debit.action == 'room_creation'
        assert debit.amount == 50

    def test_failed_debit_does_not_count_usage(self, session, make_user):
        """A refused overage debit rolls back the usage increment with it."""
        user = make_user('Creator')
        _create_rooms(session, user, 2)

        with pytest.raises(InsufficientCoinsError):
            room_limit_service.process_room_creation(session, user)
        session.rollback()

        assert room_limit_service.get_current_month_usage(session, user) == 2

    def _usage_row(self, session, user):
        return session.query(UserRoomUsage).filter_by(user_id=user.id).populate_existing().one()

    def _take_last_free_slot_elsewhere(self, session, user, monkeypatch):
        """Another request uses the last free room after this one's quota check read 1 of 2."""
        monkeypatch.setattr(room_limit_service, 'get_current_month_usage', lambda *args, **kwargs: 1)
        session.query(UserRoomUsage).filter_by(user_id=user.id).update({'monthly_rooms_created': 2})
        session.commit()

    def test_room_is_charged_when_free_slot_was_taken_after_check(self, session, make_user, monkeypatch):
        user = make_user('Creator')
        coin_service.grant_coins(session, user, 50)
        _create_rooms(session, user, 1)
        self._take_last_free_slot_elsewhere(session, user, monkeypatch)

        result = room_service.create_room(session, user, {'name': f'Late {user.id}'})

        assert result['cost_info'] == {'was_free': False, 'coins_spent': 50, 'remaining_coins': 0}
        assert self._usage_row(session, user).monthly_rooms_created == 3

    def test_free_slot_taken_after_check_without_coins_is_refused(self, session, make_user, monkeypatch):
        user = make_user('Creator')
        _create_rooms(session, user, 1)
        self._take_last_free_slot_elsewhere(session, user, monkeypatch)

        with pytest.raises(InsufficientCoinsError):
            room_service.create_room(session, user, {'name': f'Late {user.id}'})

        assert self._usage_row(session, user).monthly_rooms_created == 2
        assert session.query(Room).filter_by(owner_id=user.id).count() == 1

    def test_concurrent_first_room_of_month_is_a_conflict(self, session, make_user, monkeypatch):
        """The usage row inserted by a competing request is not mistaken for a duplicate room name."""
        user = make_user('Creator')
        today = date.today()
        session.add(UserRoomUsage(
            user_id=user.id, usage_year=today.year, usage_month=today.month, monthly_rooms_created=0
        ))
        session.commit()
        monkeypatch.setattr(room_limit_service, '_find_usage_row', lambda *args, **kwargs: None)

        with pytest.raises(BusinessLogicError) as exc_info:
            room_service.create_room(session, user, {'name': f'First {user.id}'})

        assert exc_info.value.status_code == 409
        assert session.query(Room).filter_by(owner_id=user.id).count() == 0

    def test_silver_subscription_gets_four(self, session, make_user):
        user = make_user('Silver', level='silver')

        assert room_limit_service.get_monthly_room_limit(session, user) == 4
        results = _create_rooms(session, user, 4)

        assert all(r['cost_info']['was_free'] for r in results)
        assert results[-1]['usage_info']['remaining_free_rooms'] == 0

    def test_active_subscription_overrides_cached_level(self, session, make_user):
        user = make_user('Subscriber')
        session.add(Subscription(
            user_id=user.id, level='gold', start_date=date.today(),
            end_date=date.today() + timedelta(days=30), is_active=True
        ))
        session.commit()

        assert room_limit_service.get_monthly_room_limit(session, user) == 4

    def test_expired_or_inactive_subscription_is_ignored(self, session, make_user):
        user = make_user('Lapsed')
        today = date.today()
        session.add_all([
            Subscription(
                user_id=user.id, level='gold', start_date=today - timedelta(days=60),
                end_date=today - timedelta(days=1), is_active=True
            ),
            Subscription(
                user_id=user.id, level='silver', start_date=today,
                end_date=today + timedelta(days=30), is_active=False
            ),
        ])
        session.commit()

        assert subscription_service.get_active_subscription(session, user) is None
        assert room_limit_service.get_monthly_room_limit(session, user) == 2


class TestCreateRoom:
    """Tests for room validation."""

    def test_creator_becomes_moderator(self, session, make_user):
        user = make_user('Creator')

        result = room_service.create_room(session, user, {'name': f'Mine {user.id}', 'description': 'Hi'})

        member = session.query(RoomMember).filter_by(room_id=result['room']['id']).one()
        assert member.user_id == user.id
        assert member.role == 'moderator'
        assert member.status == 'approved'

    def test_duplicate_name(self, session, make_user, room):
        user = make_user('Creator')

        with pytest.raises(ValidationError) as exc_info:
            room_service.create_room(session, user, {'name': room.name})
        assert exc_info.value.field == 'name'
        assert room_limit_service.get_current_month_usage(session, user) == 0

    def test_secure_room_needs_password(self, session, make_user):
        user = make_user('Creator')

        with pytest.raises(ValidationError):
            room_service.create_room(session, user, {'name': f'Vault {user.id}', 'type': 'secure', 'password': '123'})

        result = room_service.create_room(
            session, user, {'name': f'Vault {user.id}', 'type': 'secure', 'password': '123456'}
        )
        room = session.get(Room, result['room']['id'])
        assert room.check_password('123456')

    def test_commercial_room_requires_gold(self, session, make_user):
        bronze = make_user('Bronze')
        gold = make_user('Gold', level='gold')

        with pytest.raises(BusinessLogicError) as exc_info:
            room_service.create_room(session, bronze, {'name': f'Shop {bronze.id}', 'is_commercial': True})
        assert exc_info.value.status_code == 403

        result = room_service.create_room(session, gold, {'name': f'Shop {gold.id}', 'is_commercial': True})
        assert result['room']['is_commercial'] is True
