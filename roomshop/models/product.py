"""Product model."""
from sqlalchemy import Column, BigInteger, Integer, String, Text, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from roomshop.database import Base, IdType


class Product(Base):
    """Product listed in a room.

    ``stock`` counts units that are neither reserved in a cart nor sold.
    Only ``roomshop.services.stock_service`` writes it.
    """

    __tablename__ = 'products'

    id = Column(IdType, primary_key=True, autoincrement=True)
    room_id = Column(BigInteger, ForeignKey('rooms.id'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    price = Column(Integer, nullable=False)  # smallest currency unit
    stock = Column(Integer, nullable=False, default=0, server_default='0')
    status = Column(String(20), nullable=False, default='active', server_default='active')
    visibility = Column(String(20), nullable=False, default='public', server_default='public')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    room = relationship('Room', back_populates='products')

    __table_args__ = (
        CheckConstraint('stock >= 0', name='check_product_stock_non_negative'),
        CheckConstraint('price >= 0', name='check_product_price_non_negative'),
        CheckConstraint("status IN ('active', 'inactive')", name='check_product_status'),
        CheckConstraint("visibility IN ('private', 'public')", name='check_product_visibility'),
    )

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock})>"

    @property
    def is_active(self):
        return self.status == 'active'

    @property
    def seller_id(self):
        """Owner of the containing room."""
        return self.room.owner_id if self.room else None

    def to_dict(self):
        return {
            'id': self.id,
            'room_id': self.room_id,
            'name': self.name,
            'description': self.description,
            'category': self.category,
            'price': self.price,
            'stock': self.stock,
            'status': self.status,
            'visibility': self.visibility,
        }
