"""Manual deposit model."""
from sqlalchemy import Column, BigInteger, Integer, String, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from roomshop.database import Base, IdType


class Payment(Base):
    """
    USD deposit submitted by a user and approved or rejected by an admin.

    Approval credits ``amount`` to ``User.balance``.
    """
    __tablename__ = 'payments'

    id = Column(IdType, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)

    # Payment Details
    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default='USD')
    payment_method = Column(String(50), nullable=False, default='wishmoney')
    transaction_id = Column(String(255), nullable=False)
    phone_no = Column(String(20), nullable=False)

    # Status
    payment_status = Column(String(20), nullable=False, default='pending')
    reject_reason = Column(String(500), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(BigInteger, ForeignKey('users.id'), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    user = relationship('User', foreign_keys=[user_id])

    # Table constraints
    __table_args__ = (
        CheckConstraint("payment_status IN ('pending', 'completed', 'rejected')", name='check_payment_status'),
        CheckConstraint('amount BETWEEN 1 AND 10', name='check_payment_amount'),
    )

    def __repr__(self):
        return f'<Payment id={self.id} user_id={self.user_id} amount={self.amount} status={self.payment_status}>'

    @property
    def is_pending(self):
        """Check if payment is awaiting review."""
        return self.payment_status == 'pending'

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'amount': self.amount,
            'currency': self.currency,
            'payment_method': self.payment_method,
            'transaction_id': self.transaction_id,
            'phone_no': self.phone_no,
            'payment_status': self.payment_status,
            'reject_reason': self.reject_reason,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
