"""Room creation."""
import logging
from typing import Dict, Any
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from roomshop.models import User, Room, RoomMember, RoomType
from roomshop.exceptions import RoomshopError, BusinessLogicError, ValidationError, InsufficientCoinsError
from roomshop.services import room_limit_service
from roomshop.services.subscription_service import get_effective_level

logger = logging.getLogger(__name__)

MIN_ROOM_PASSWORD_LENGTH = 6
_ROOM_TYPES = {t.value for t in RoomType}


def _validate_room_attrs(session, user, attrs):
    name = (attrs.get('name') or '').strip()
    if not name:
        raise ValidationError('Room name is required', field='name')
    if len(name) > 255:
        raise ValidationError('Room name must be at most 255 characters', field='name')
    if session.query(Room.id).filter(Room.name == name).first():
        raise ValidationError('A room with this name already exists', field='name')

    room_type = attrs.get('type') or RoomType.PUBLIC.value
    if room_type not in _ROOM_TYPES:
        raise ValidationError('Room type must be public, private or secure', field='type')

    password = attrs.get('password')
    if room_type == RoomType.SECURE.value:
        if not password or len(password) < MIN_ROOM_PASSWORD_LENGTH:
            raise ValidationError(
                f'Secure rooms need a password of at least {MIN_ROOM_PASSWORD_LENGTH} characters',
                field='password'
            )

    is_commercial = bool(attrs.get('is_commercial', False))
    if is_commercial and get_effective_level(session, user) != 'gold':
        raise BusinessLogicError('Only gold members can create commercial rooms', status_code=403)

    return {
        'name': name,
        'description': attrs.get('description'),
        'type': room_type,
        'password': password if room_type == RoomType.SECURE.value else None,
        'is_commercial': is_commercial,
    }


def create_room(session: Session, user: User, attrs: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create a room, make the creator its moderator and charge the quota.

    Everything runs in one transaction: a failed coin debit leaves neither
    the room nor the usage increment behind.

    Returns:
        Dict with room, usage_info and cost_info.
    """
    data = _validate_room_attrs(session, user, attrs)

    usage_info = room_limit_service.can_create_room(session, user)
    if not usage_info['can_create']:
        raise InsufficientCoinsError(usage_info['additional_cost'], user.coins)

    try:
        room = Room(
            owner_id=user.id,
            name=data['name'],
            description=data['description'],
            type=data['type'],
            is_commercial=data['is_commercial'],
        )
        if data['password']:
            room.set_password(data['password'])
        session.add(room)
        try:
            session.flush()
        except IntegrityError:
            raise ValidationError('A room with this name already exists', field='name')

        session.add(RoomMember(room_id=room.id, user_id=user.id, role='moderator', status='approved'))

        cost_info = room_limit_service.process_room_creation(session, user)
        session.commit()
    except RoomshopError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"[ROOMS] Error creating room for user_id={user.id}: {e}")
        raise

    logger.info(f"[ROOMS] Room created: room_id={room.id} owner_id={user.id} free={cost_info['was_free']}")
    return {
        'room': room.to_dict(),
        'usage_info': room_limit_service.get_room_usage_summary(session, user),
        'cost_info': cost_info,
    }
