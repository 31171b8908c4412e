"""Daily activity minutes, used by the activity reward."""
from sqlalchemy import Column, BigInteger, Integer, Date, DateTime, ForeignKey, UniqueConstraint
from roomshop.database import Base, IdType


class UserActivity(Base):
    __tablename__ = 'user_activities'

    id = Column(IdType, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    activity_date = Column(Date, nullable=False)
    total_minutes = Column(Integer, nullable=False, default=0)
    last_activity_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint('user_id', 'activity_date', name='uq_user_activity_date'),
    )

    def __repr__(self):
        return f'<UserActivity user_id={self.user_id} date={self.activity_date} minutes={self.total_minutes}>'
