"""Order model and its status machine."""
from sqlalchemy import Column, BigInteger, Integer, String, Text, DateTime, Enum, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from roomshop.database import Base, IdType
import enum


class OrderStatus(enum.Enum):
    """Order status enum."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self):
        return self in TERMINAL_STATUSES

    @property
    def releases_stock(self):
        """Entering this status gives the ordered units back to the product."""
        return self in (OrderStatus.REJECTED, OrderStatus.CANCELLED)


class PlacedFrom(enum.Enum):
    STORE = "store"
    ROOM = "room"


# Seller-driven transitions
ORDER_TRANSITIONS = {
    OrderStatus.PENDING: frozenset({OrderStatus.ACCEPTED, OrderStatus.REJECTED, OrderStatus.CANCELLED}),
    OrderStatus.ACCEPTED: frozenset({OrderStatus.DELIVERED}),
}

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.REJECTED, OrderStatus.CANCELLED})

# Buyers may cancel from these statuses
BUYER_CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.ACCEPTED})


class Order(Base):
    """
    One order line for a single product.

    Orders placed together from a multi-product checkout share a
    ``batch_id``; the first one is the main order and every other order in
    the batch points to it through ``parent_order_id``.
    """

    __tablename__ = 'orders'

    id = Column(IdType, primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey('products.id'), nullable=False, index=True)
    buyer_id = Column(BigInteger, ForeignKey('users.id'), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    total_price = Column(Integer, nullable=False)
    status = Column(Enum(OrderStatus, name='order_status'), nullable=False, default=OrderStatus.PENDING)
    batch_id = Column(String(64), nullable=True, index=True)
    parent_order_id = Column(BigInteger, ForeignKey('orders.id'), nullable=True, index=True)

    # Shipping
    phone_number = Column(String(20), nullable=False)
    address = Column(String(255), nullable=False)
    city = Column(String(100), nullable=False)
    delivery_notes = Column(Text, nullable=True)
    placed_from = Column(Enum(PlacedFrom, name='order_placed_from'), nullable=False, default=PlacedFrom.STORE)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    product = relationship('Product')
    buyer = relationship('User')
    parent = relationship('Order', remote_side=[id], back_populates='children')
    children = relationship('Order', back_populates='parent', order_by='Order.id')

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_order_quantity_positive'),
        CheckConstraint('total_price >= 0', name='check_order_total_non_negative'),
    )

    def __repr__(self):
        return f"<Order(id={self.id}, product_id={self.product_id}, status={self.status.value})>"

    @property
    def is_main(self):
        return self.parent_order_id is None

    def can_transition_to(self, new_status):
        return new_status in ORDER_TRANSITIONS.get(self.status, frozenset())

    @property
    def can_be_cancelled(self):
        return self.status in BUYER_CANCELLABLE_STATUSES

    def to_dict(self, include_children=False):
        data = {
            'id': self.id,
            'product_id': self.product_id,
            'product_name': self.product.name if self.product else None,
            'buyer_id': self.buyer_id,
            'quantity': self.quantity,
            'total_price': self.total_price,
            'status': self.status.value,
            'batch_id': self.batch_id,
            'parent_order_id': self.parent_order_id,
            'phone_number': self.phone_number,
            'address': self.address,
            'city': self.city,
            'delivery_notes': self.delivery_notes,
            'placed_from': self.placed_from.value,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if include_children:
            data['child_orders'] = [child.to_dict() for child in self.children]
        return data
