"""Cart item model."""
from sqlalchemy import Column, BigInteger, Integer, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from roomshop.database import Base, IdType


class CartItem(Base):
    """
    One line of a user's cart.

    ``reserved_stock`` is the number of units already taken out of
    ``Product.stock`` on behalf of this line.
    """

    __tablename__ = 'cart_items'

    id = Column(IdType, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('products.id'), nullable=False)
    quantity = Column(Integer, nullable=False)
    reserved_stock = Column(Integer, nullable=False, default=0, server_default='0')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    user = relationship('User')
    product = relationship('Product')

    __table_args__ = (
        UniqueConstraint('user_id', 'product_id', name='uq_cart_item_user_product'),
        CheckConstraint('quantity > 0', name='check_cart_item_quantity_positive'),
        CheckConstraint('reserved_stock >= 0', name='check_cart_item_reserved_non_negative'),
        CheckConstraint('reserved_stock <= quantity', name='check_cart_item_reserved_le_quantity'),
    )

    def __repr__(self):
        return f'<CartItem id={self.id} user_id={self.user_id} product_id={self.product_id} qty={self.quantity}>'

    @property
    def line_total(self):
        return self.product.price * self.quantity

    @property
    def available_stock(self):
        """Units this line could grow to: free stock plus what it already holds."""
        return self.product.stock + self.reserved_stock

    @property
    def can_purchase(self):
        return self.reserved_stock >= self.quantity or self.product.stock >= self.quantity - self.reserved_stock
