"""Product management for room owners."""
import logging
from typing import Dict, Any, List
from sqlalchemy.orm import Session
from roomshop.models import User, Room, Product
from roomshop.exceptions import RoomshopError, NotFoundError, UnauthorizedError, ValidationError
from roomshop.services import stock_service

logger = logging.getLogger(__name__)

_STATUSES = ('active', 'inactive')
_VISIBILITIES = ('private', 'public')


def _clean_product_attrs(attrs: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Validate editable product fields. ``partial`` allows missing keys."""
    data = {}

    if 'name' in attrs or not partial:
        name = (attrs.get('name') or '').strip()
        if not name or len(name) > 255:
            raise ValidationError('Product name is required (max 255 characters)', field='name')
        data['name'] = name

    if 'price' in attrs or not partial:
        price = attrs.get('price')
        if isinstance(price, bool) or not isinstance(price, int) or price < 0:
            raise ValidationError('Price must be a whole number of zero or more', field='price')
        data['price'] = price

    if 'description' in attrs:
        data['description'] = attrs.get('description')

    if 'category' in attrs:
        category = attrs.get('category')
        if category is not None and len(category) > 100:
            raise ValidationError('Category must be at most 100 characters', field='category')
        data['category'] = category

    if 'status' in attrs:
        if attrs['status'] not in _STATUSES:
            raise ValidationError('Status must be active or inactive', field='status')
        data['status'] = attrs['status']

    if 'visibility' in attrs:
        if attrs['visibility'] not in _VISIBILITIES:
            raise ValidationError('Visibility must be private or public', field='visibility')
        data['visibility'] = attrs['visibility']

    return data


def get_product(session: Session, product_id: int) -> Product:
    product = session.get(Product, product_id)
    if not product:
        raise NotFoundError('Product not found')
    return product


def _get_owned_product(session, user, product_id):
    product = get_product(session, product_id)
    if product.room.owner_id != user.id:
        raise UnauthorizedError()
    return product


def list_room_products(session: Session, room_id: int, include_private: bool = False) -> List[Product]:
    query = session.query(Product).filter(Product.room_id == room_id)
    if not include_private:
        query = query.filter(Product.visibility == 'public', Product.status == 'active')
    return query.order_by(Product.id).all()


def create_product(session: Session, user: User, room_id: int, attrs: Dict[str, Any]) -> Product:
    """Create a product in one of the user's rooms with an initial stock."""
    room = session.get(Room, room_id)
    if not room:
        raise NotFoundError('Room not found')
    if room.owner_id != user.id:
        raise UnauthorizedError()

    data = _clean_product_attrs(attrs)
    stock = attrs.get('stock', 0)
    if isinstance(stock, bool) or not isinstance(stock, int) or stock < 0:
        raise ValidationError('Stock must be a whole number of zero or more', field='stock')

    try:
        product = Product(room_id=room.id, stock=0, **data)
        session.add(product)
        session.flush()
        if stock:
            stock_service.restock(session, product, stock, actor_id=user.id)
        session.commit()
    except RoomshopError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"Error creating product in room_id={room_id}: {e}")
        raise

    logger.info(f"Product created: product_id={product.id} room_id={room.id} stock={stock}")
    return product


def update_product(session: Session, user: User, product_id: int, attrs: Dict[str, Any]) -> Product:
    product = _get_owned_product(session, user, product_id)
    data = _clean_product_attrs(attrs, partial=True)
    try:
        for key, value in data.items():
            setattr(product, key, value)
        session.commit()
    except Exception as e:
        session.rollback()
        logger.exception(f"Error updating product_id={product_id}: {e}")
        raise

    logger.info(f"Product updated: product_id={product_id} fields={sorted(data)}")
    return product


def set_stock(session: Session, user: User, product_id: int, new_stock: int) -> Dict[str, Any]:
    """Owner sets the available stock; broadcast with reason ``manual_update``."""
    product = _get_owned_product(session, user, product_id)
    try:
        change = stock_service.restock(session, product, new_stock, actor_id=user.id)
        session.commit()
        return change
    except RoomshopError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"Error setting stock for product_id={product_id}: {e}")
        raise
