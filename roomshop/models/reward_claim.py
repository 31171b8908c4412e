"""Reward claim model - one row per granted reward and period."""
from sqlalchemy import Column, BigInteger, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from roomshop.database import Base, IdType

# period_key used for rewards that can only ever be granted once
ONCE = 'once'


class RewardClaim(Base):
    """
    Idempotency record for coin rewards.

    Daily rewards use the ISO date as ``period_key``; one-time rewards use
    ``ONCE``. The unique constraint turns a racing second claim into an
    IntegrityError.
    """

    __tablename__ = 'reward_claims'

    id = Column(IdType, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    action = Column(String(100), nullable=False)
    period_key = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'action', 'period_key', name='uq_reward_claim_period'),
    )

    def __repr__(self):
        return f"<RewardClaim user_id={self.user_id} action='{self.action}' period='{self.period_key}'>"
