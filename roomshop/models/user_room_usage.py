"""Monthly room creation counter."""
from sqlalchemy import Column, BigInteger, Integer, DateTime, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.sql import func
from roomshop.database import Base, IdType


class UserRoomUsage(Base):
    """Rooms created by a user in one calendar month."""

    __tablename__ = 'user_room_usage'

    id = Column(IdType, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    usage_year = Column(Integer, nullable=False)
    usage_month = Column(Integer, nullable=False)
    monthly_rooms_created = Column(Integer, nullable=False, default=0, server_default='0')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'usage_year', 'usage_month', name='uq_user_room_usage_month'),
        CheckConstraint('usage_month BETWEEN 1 AND 12', name='check_user_room_usage_month'),
        CheckConstraint('monthly_rooms_created >= 0', name='check_user_room_usage_non_negative'),
    )

    def __repr__(self):
        return (f'<UserRoomUsage user_id={self.user_id} '
                f'{self.usage_year}-{self.usage_month:02d} created={self.monthly_rooms_created}>')
