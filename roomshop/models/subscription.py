"""Subscription model - time-bounded paid tiers."""
from sqlalchemy import Column, BigInteger, String, Boolean, Date, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from roomshop.database import Base, IdType
import enum


class SubscriptionLevel(enum.Enum):
    """Subscription tiers, cheapest first."""
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"


class Subscription(Base):
    """
    A purchased subscription period.

    The latest active row wins over ``User.subscription_level`` when
    resolving a user's effective level.
    """
    __tablename__ = 'subscriptions'

    id = Column(IdType, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    level = Column(String(20), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    user = relationship('User', back_populates='subscriptions')

    __table_args__ = (
        CheckConstraint("level IN ('bronze', 'silver', 'gold')", name='check_subscription_level'),
    )

    def __repr__(self):
        return f'<Subscription user_id={self.user_id} level={self.level} active={self.is_active}>'
