"""User model - platform members who buy, sell and own rooms."""
from sqlalchemy import Column, Integer, String, Boolean, Numeric, DateTime, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash
from roomshop.database import Base, IdType


class User(Base):
    """Platform user.

    ``coins`` is a cached sum of the user's coin ledger and ``balance`` the
    USD wallet topped up by approved deposits. Both are only changed through
    the ledger and payment services.
    """

    __tablename__ = 'users'

    id = Column(IdType, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    password_hash = Column(String(255), nullable=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)

    subscription_level = Column(String(20), nullable=False, default='bronze', server_default='bronze')
    coins = Column(Integer, nullable=False, default=0, server_default='0')
    balance = Column(Numeric(10, 2), nullable=False, default=0, server_default='0.00')

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    rooms = relationship('Room', back_populates='owner')
    subscriptions = relationship('Subscription', back_populates='user', order_by='Subscription.id.desc()')

    __table_args__ = (
        CheckConstraint("subscription_level IN ('bronze', 'silver', 'gold')", name='check_user_subscription_level'),
        CheckConstraint('coins >= 0', name='check_user_coins_non_negative'),
        CheckConstraint('balance >= 0', name='check_user_balance_non_negative'),
    )

    def set_password(self, password):
        """Set password hash."""
        self.password_hash = generate_password_hash(password, method='scrypt')

    def check_password(self, password):
        """Check password against hash."""
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'subscription_level': self.subscription_level,
            'coins': self.coins,
            'balance': str(self.balance),
        }

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', level='{self.subscription_level}')>"
