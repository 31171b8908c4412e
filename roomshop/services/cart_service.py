"""
Cart service - per-user reservations that turn into orders at checkout.

Adding to the cart reserves stock immediately; checkout converts the
reservation into orders without touching ``Product.stock`` again.
"""
import logging
import uuid
from typing import Dict, Any, List, Optional
from sqlalchemy.orm import Session
from roomshop.models import User, Product, CartItem, Order, OrderStatus, PlacedFrom
from roomshop.exceptions import (
    RoomshopError, NotFoundError, ValidationError, SelfPurchaseError, ProductInactiveError, EmptyCartError
)
from roomshop.services import stock_service
from roomshop.services.notification_service import notify_safely, send_order_placed_notification
from roomshop.metrics import orders_placed_total

logger = logging.getLogger(__name__)


def _positive_quantity(qty) -> int:
    if isinstance(qty, bool) or not isinstance(qty, int) or qty < 1:
        raise ValidationError('Quantity must be at least 1', field='quantity')
    return qty


def get_purchasable_product(session: Session, buyer: User, product_id: int) -> Product:
    """
    Load a product the buyer is allowed to reserve.

    Raises:
        NotFoundError, SelfPurchaseError, ProductInactiveError
    """
    product = session.get(Product, product_id)
    if not product:
        raise NotFoundError('Product not found')
    if product.seller_id == buyer.id:
        raise SelfPurchaseError()
    if not product.is_active:
        raise ProductInactiveError(product.name)
    return product


def _get_user_item(session, user, cart_item_id) -> CartItem:
    item = session.query(CartItem).filter(
        CartItem.id == cart_item_id,
        CartItem.user_id == user.id
    ).with_for_update().first()
    if not item:
        raise NotFoundError('Cart item not found')
    return item


def add_to_cart(session: Session, user: User, product_id: int, qty: int) -> CartItem:
    """
    Reserve ``qty`` units and add them to the user's cart line for the product.

    Only the additional amount is reserved when a line already exists.
    """
    qty = _positive_quantity(qty)
    try:
        product = get_purchasable_product(session, user, product_id)
        item = session.query(CartItem).filter(
            CartItem.user_id == user.id,
            CartItem.product_id == product.id
        ).with_for_update().first()

        stock_service.reserve(session, product, qty, 'cart_reserved', actor_id=user.id)

        if item:
            item.quantity += qty
            item.reserved_stock += qty
        else:
            item = CartItem(user_id=user.id, product_id=product.id, quantity=qty, reserved_stock=qty)
            session.add(item)

        session.flush()
        session.commit()
        logger.info(f"[CART] user_id={user.id} added {qty} x product_id={product_id} (line qty={item.quantity})")
        return item

    except RoomshopError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"[CART] Error adding product_id={product_id} for user_id={user.id}: {e}")
        raise


def update_quantity(session: Session, user: User, cart_item_id: int, new_qty: int) -> CartItem:
    """
    Set a cart line to ``new_qty``, reserving or releasing the difference.

    Only units the line actually holds are released. Growing a line that
    holds fewer reserved units than its quantity also reserves the shortfall.
    """
    new_qty = _positive_quantity(new_qty)
    try:
        item = _get_user_item(session, user, cart_item_id)
        delta = new_qty - item.quantity
        if delta > 0:
            target_reserved = new_qty
        else:
            target_reserved = min(item.reserved_stock, new_qty)
        stock_service.adjust_reservation(
            session, item.product, target_reserved - item.reserved_stock, actor_id=user.id
        )

        item.quantity = new_qty
        item.reserved_stock = target_reserved
        session.flush()
        session.commit()
        logger.info(f"[CART] user_id={user.id} cart_item_id={cart_item_id} qty -> {new_qty} ({delta:+d})")
        return item

    except RoomshopError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"[CART] Error updating cart_item_id={cart_item_id}: {e}")
        raise


def remove_item(session: Session, user: User, cart_item_id: int) -> None:
    """Delete a cart line and give its reserved units back."""
    try:
        item = _get_user_item(session, user, cart_item_id)
        stock_service.release(session, item.product, item.reserved_stock, 'cart_released', actor_id=user.id)
        session.delete(item)
        session.commit()
        logger.info(f"[CART] user_id={user.id} removed cart_item_id={cart_item_id}")

    except RoomshopError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"[CART] Error removing cart_item_id={cart_item_id}: {e}")
        raise


def clear_cart(session: Session, user: User) -> int:
    """Release every line of the cart and delete them. Returns the number of lines removed."""
    try:
        items = _locked_cart_items(session, user)
        for item in items:
            stock_service.release(session, item.product, item.reserved_stock, 'cart_cleared', actor_id=user.id)
            session.delete(item)
        session.commit()
        logger.info(f"[CART] user_id={user.id} cleared {len(items)} line(s)")
        return len(items)

    except RoomshopError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"[CART] Error clearing cart for user_id={user.id}: {e}")
        raise


def _locked_cart_items(session, user) -> List[CartItem]:
    return session.query(CartItem).filter(
        CartItem.user_id == user.id
    ).order_by(CartItem.id).with_for_update().all()


def get_cart(session: Session, user: User) -> Dict[str, Any]:
    items = session.query(CartItem).filter(CartItem.user_id == user.id).order_by(CartItem.id).all()
    lines = []
    for item in items:
        product = item.product
        lines.append({
            'id': item.id,
            'product_id': product.id,
            'product_name': product.name,
            'price': product.price,
            'quantity': item.quantity,
            'reserved_stock': item.reserved_stock,
            'available_stock': item.available_stock,
            'can_purchase': product.is_active and item.can_purchase,
            'total_price': item.line_total,
        })
    return {
        'items': lines,
        'count': sum(line['quantity'] for line in lines),
        'total': sum(line['total_price'] for line in lines),
    }


def cart_count(session: Session, user: User) -> int:
    items = session.query(CartItem.quantity).filter(CartItem.user_id == user.id).all()
    return sum(quantity for (quantity,) in items)


def validate_shipping(shipping: Dict[str, Any]) -> Dict[str, Any]:
    """Check and normalize shipping fields shared by checkout and direct orders."""
    shipping = shipping or {}
    cleaned = {}
    for field, limit, required in (
        ('phone_number', 20, True),
        ('address', 255, True),
        ('city', 100, True),
        ('delivery_notes', 500, False),
    ):
        value = shipping.get(field)
        value = value.strip() if isinstance(value, str) else value
        if required and not value:
            raise ValidationError(f'{field.replace("_", " ").capitalize()} is required', field=field)
        if value is not None and not isinstance(value, str):
            raise ValidationError(f'{field} must be text', field=field)
        if value and len(value) > limit:
            raise ValidationError(f'{field} must be at most {limit} characters', field=field)
        cleaned[field] = value or None

    placed_from = shipping.get('placed_from', PlacedFrom.STORE.value)
    try:
        cleaned['placed_from'] = PlacedFrom(placed_from)
    except ValueError:
        raise ValidationError('placed_from must be store or room', field='placed_from')
    return cleaned


def new_batch_id() -> str:
    return f'BATCH-{uuid.uuid4().hex[:20].upper()}'


def checkout(session: Session, user: User, shipping: Dict[str, Any]) -> Dict[str, Any]:
    """
    Turn every cart line into a pending order in one transaction.

    Stock was reserved when the lines were added, so confirming a line only
    zeroes its ``reserved_stock``. When more than one product is bought the
    orders share a batch id and the first one becomes the main order.

    Returns:
        Dict with orders, total_amount, total_orders, main_order_id and batch_id.
    """
    shipping = validate_shipping(shipping)

    try:
        items = _locked_cart_items(session, user)
        if not items:
            raise EmptyCartError()

        for item in items:
            if not item.product.is_active:
                raise ProductInactiveError(item.product.name)

        has_multiple_products = len(items) > 1
        batch_id = new_batch_id() if has_multiple_products else None
        main_order: Optional[Order] = None
        orders: List[Order] = []

        for item in items:
            product = item.product
            _confirm_reservation(session, item, user)

            order = Order(
                product_id=product.id,
                buyer_id=user.id,
                quantity=item.quantity,
                total_price=product.price * item.quantity,
                status=OrderStatus.PENDING,
                batch_id=batch_id,
                parent_order_id=main_order.id if main_order else None,
                **shipping
            )
            session.add(order)
            session.flush()
            if has_multiple_products and main_order is None:
                main_order = order
            orders.append(order)
            session.delete(item)

        session.commit()

    except RoomshopError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"[CART] Checkout failed for user_id={user.id}: {e}")
        raise

    orders_placed_total.labels(source='cart').inc(len(orders))
    main_order = main_order or orders[0]
    logger.info(
        f"[CART] Checkout user_id={user.id}: {len(orders)} order(s), "
        f"main_order_id={main_order.id} batch_id={batch_id}"
    )

    notify_safely(session, send_order_placed_notification, main_order)

    return {
        'orders': [order.to_dict() for order in orders],
        'total_amount': sum(order.total_price for order in orders),
        'total_orders': 1 if has_multiple_products else len(orders),
        'main_order_id': main_order.id,
        'batch_id': batch_id,
    }


def _confirm_reservation(session, item: CartItem, user: User) -> None:
    """
    Consume a cart line's reservation.

    A line holding fewer reserved units than its quantity (left behind by a
    failed top-up) reserves the shortfall now; checkout aborts if that fails.
    """
    shortfall = item.quantity - item.reserved_stock
    if shortfall > 0:
        logger.warning(
            f"[CART] cart_item_id={item.id} reserved {item.reserved_stock} of {item.quantity}; "
            f"reserving shortfall of {shortfall}"
        )
        stock_service.reserve(session, item.product, shortfall, 'purchase', actor_id=user.id)
    item.reserved_stock = 0
