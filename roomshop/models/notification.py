"""In-app notification model."""
import json
from sqlalchemy import Column, BigInteger, String, Text, Boolean, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.sql import func
from roomshop.database import Base, IdType


class Notification(Base):
    __tablename__ = 'notifications'

    id = Column(IdType, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(Text, nullable=True)  # JSON encoded
    action_url = Column(String(255), nullable=True)
    related_user_id = Column(BigInteger, ForeignKey('users.id'), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "type IN ('order_placed', 'order_status', 'payment_status')",
            name='check_notification_type'
        ),
    )

    def __repr__(self):
        return f"<Notification id={self.id} user_id={self.user_id} type='{self.type}'>"

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'data': json.loads(self.data) if self.data else {},
            'action_url': self.action_url,
            'related_user_id': self.related_user_id,
            'is_read': self.is_read,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
