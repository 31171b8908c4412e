"""Coin ledger model."""
from datetime import datetime
from sqlalchemy import Column, BigInteger, Integer, String, Text, DateTime, Enum, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from roomshop.database import Base, IdType
import enum


class CoinDirection(enum.Enum):
    """Coin movement direction."""
    IN = "in"
    OUT = "out"


class CoinSourceType(enum.Enum):
    """Where a coin movement comes from."""
    PURCHASE = "purchase"
    REWARD = "reward"
    REFERRAL = "referral"
    SYSTEM = "system"
    SPEND = "spend"


class CoinTransaction(Base):
    """
    Append-only coin ledger entry.

    For every user, ``User.coins`` equals the sum of ``in`` amounts minus the
    sum of ``out`` amounts.
    """

    __tablename__ = 'coin_transactions'

    id = Column(IdType, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    direction = Column(Enum(CoinDirection, name='coin_direction'), nullable=False)
    amount = Column(Integer, nullable=False)
    source_type = Column(Enum(CoinSourceType, name='coin_source_type'), nullable=False)
    action = Column(String(100), nullable=False, index=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.now, server_default=func.now())

    user = relationship('User')

    __table_args__ = (
        CheckConstraint('amount > 0', name='check_coin_transaction_amount_positive'),
    )

    def __repr__(self):
        return f"<CoinTransaction(id={self.id}, user_id={self.user_id}, {self.direction.value} {self.amount} '{self.action}')>"

    @property
    def signed_amount(self):
        return self.amount if self.direction == CoinDirection.IN else -self.amount

    def to_dict(self):
        return {
            'id': self.id,
            'direction': self.direction.value,
            'amount': self.amount,
            'source_type': self.source_type.value,
            'action': self.action,
            'notes': self.notes,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
