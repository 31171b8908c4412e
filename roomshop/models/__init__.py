"""Models package - exports all SQLAlchemy models."""
# Accounts
from roomshop.models.user import User
from roomshop.models.subscription import Subscription, SubscriptionLevel

# Rooms
from roomshop.models.room import Room, RoomMember, RoomType
from roomshop.models.user_room_usage import UserRoomUsage

# Marketplace
from roomshop.models.product import Product
from roomshop.models.cart_item import CartItem
from roomshop.models.order import (
    Order, OrderStatus, PlacedFrom,
    ORDER_TRANSITIONS, TERMINAL_STATUSES, BUYER_CANCELLABLE_STATUSES
)

# Coin economy
from roomshop.models.coin_transaction import CoinTransaction, CoinDirection, CoinSourceType
from roomshop.models.reward_claim import RewardClaim
from roomshop.models.user_activity import UserActivity
from roomshop.models.payment import Payment

from roomshop.models.notification import Notification

__all__ = [
    # Accounts
    'User', 'Subscription', 'SubscriptionLevel',
    # Rooms
    'Room', 'RoomMember', 'RoomType', 'UserRoomUsage',
    # Marketplace
    'Product', 'CartItem',
    'Order', 'OrderStatus', 'PlacedFrom',
    'ORDER_TRANSITIONS', 'TERMINAL_STATUSES', 'BUYER_CANCELLABLE_STATUSES',
    # Coin economy
    'CoinTransaction', 'CoinDirection', 'CoinSourceType', 'RewardClaim', 'UserActivity', 'Payment',
    'Notification',
]
