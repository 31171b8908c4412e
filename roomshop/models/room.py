"""Room and RoomMember models."""
from sqlalchemy import Column, BigInteger, String, Text, Boolean, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash
from roomshop.database import Base, IdType
import enum


class RoomType(enum.Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    SECURE = "secure"


class Room(Base):
    """Community room. Its owner is the seller of every product listed in it."""

    __tablename__ = 'rooms'

    id = Column(IdType, primary_key=True, autoincrement=True)
    owner_id = Column(BigInteger, ForeignKey('users.id'), nullable=False, index=True)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    type = Column(String(20), nullable=False, default='public')
    password_hash = Column(String(255), nullable=True)
    is_commercial = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    owner = relationship('User', back_populates='rooms')
    members = relationship('RoomMember', back_populates='room', cascade='all, delete-orphan')
    products = relationship('Product', back_populates='room')

    __table_args__ = (
        CheckConstraint("type IN ('public', 'private', 'secure')", name='check_room_type'),
    )

    def set_password(self, password):
        self.password_hash = generate_password_hash(password, method='scrypt')

    def check_password(self, password):
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'name': self.name,
            'description': self.description,
            'type': self.type,
            'is_commercial': self.is_commercial,
        }

    def __repr__(self):
        return f"<Room(id={self.id}, name='{self.name}', type='{self.type}')>"


class RoomMember(Base):
    """Membership of a user in a room."""

    __tablename__ = 'room_members'

    id = Column(IdType, primary_key=True, autoincrement=True)
    room_id = Column(BigInteger, ForeignKey('rooms.id', ondelete='CASCADE'), nullable=False)
    user_id = Column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    role = Column(String(20), nullable=False, default='member')
    status = Column(String(20), nullable=False, default='pending')
    joined_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    room = relationship('Room', back_populates='members')
    user = relationship('User')

    __table_args__ = (
        UniqueConstraint('room_id', 'user_id', name='uq_room_member'),
        CheckConstraint("role IN ('member', 'moderator')", name='check_room_member_role'),
        CheckConstraint("status IN ('pending', 'approved')", name='check_room_member_status'),
    )

    def __repr__(self):
        return f'<RoomMember room_id={self.room_id} user_id={self.user_id} role={self.role}>'
