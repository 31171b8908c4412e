"""
Redis pub/sub broadcaster for real-time events.

Services queue events on the SQLAlchemy session while they work; the
queue is published only after the surrounding transaction commits and is
discarded on rollback. Publishing degrades gracefully when Redis is down.
"""

import logging
import json
from typing import Any, Dict, Iterable, List, Optional
from datetime import datetime, date
from decimal import Decimal

import redis
from redis.exceptions import RedisError, ConnectionError, TimeoutError
from flask import Flask
from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

PENDING_EVENTS_KEY = 'roomshop.pending_events'


class BroadcastService:
    """
    Redis-based event publisher.

    Channel pattern: {prefix}:{channel}
    """

    def __init__(self, app: Optional[Flask] = None):
        """Initialize broadcast service."""
        self.client: Optional[redis.Redis] = None
        self._enabled: bool = False
        self._prefix: str = ""

        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Initialize Redis client from Flask app config."""
        self._enabled = app.config.get('BROADCAST_ENABLED', True)
        self._prefix = app.config.get('BROADCAST_CHANNEL_PREFIX', 'roomshop')
        redis_url = app.config.get('REDIS_URL', 'redis://redis:6379/0')

        if not self._enabled:
            logger.info("[BROADCAST] Broadcasting is DISABLED via config")
            return

        try:
            self.client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                socket_keepalive=True,
                retry_on_timeout=True,
                health_check_interval=30
            )
            self.client.ping()
            logger.info(f"[BROADCAST] Redis connected: {redis_url}")
        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.warning(f"[BROADCAST] Redis connection failed: {e}. Broadcasting DISABLED.")
            self._enabled = False
            self.client = None

    def is_available(self) -> bool:
        return self._enabled and self.client is not None

    def _build_channel(self, channel: str) -> str:
        return f"{self._prefix}:{channel}"

    @staticmethod
    def _serialize(value: Any) -> str:
        def default_handler(obj: Any) -> Any:
            if isinstance(obj, (datetime, date)):
                return obj.isoformat()
            elif isinstance(obj, Decimal):
                return str(obj)
            raise TypeError(f"Object of type {type(obj)} is not JSON serializable")
        return json.dumps(value, default=default_handler)

    def publish(self, channels: Iterable[str], event_name: str, payload: Dict[str, Any]) -> bool:
        """Publish one event on every channel. Returns False if nothing was sent."""
        if not self.is_available():
            logger.debug(f"[BROADCAST] Skipped {event_name}: broadcaster unavailable")
            return False
        try:
            message = self._serialize({'event': event_name, 'data': payload})
            pipeline = self.client.pipeline()
            for channel in channels:
                pipeline.publish(self._build_channel(channel), message)
            pipeline.execute()
            return True
        except (RedisError, TypeError) as e:
            logger.warning(f"[BROADCAST] Publish error for {event_name}: {e}")
            return False


_broadcast_service: Optional[BroadcastService] = None


def init_broadcast(app: Flask) -> None:
    """Initialize broadcast service singleton."""
    global _broadcast_service
    _broadcast_service = BroadcastService(app)
    app.extensions['broadcast'] = _broadcast_service


def get_broadcaster() -> Optional[BroadcastService]:
    """Get broadcast service instance (None outside an initialized app)."""
    return _broadcast_service


def queue_event(session, channels: List[str], event_name: str, payload: Dict[str, Any]) -> None:
    """Queue an event to be published once the session's transaction commits."""
    session.info.setdefault(PENDING_EVENTS_KEY, []).append((list(channels), event_name, payload))


def pending_events(session) -> list:
    """Events queued on the session and not yet published."""
    return list(session.info.get(PENDING_EVENTS_KEY, []))


@event.listens_for(Session, 'after_commit')
def _publish_pending_events(session):
    events = session.info.pop(PENDING_EVENTS_KEY, [])
    if not events:
        return
    broadcaster = get_broadcaster()
    for channels, event_name, payload in events:
        try:
            if broadcaster is None:
                logger.debug(f"[BROADCAST] No broadcaster, dropping {event_name}")
                continue
            broadcaster.publish(channels, event_name, payload)
        except Exception as e:
            # Publishing must never affect a transaction that already committed
            logger.error(f"[BROADCAST] Failed to publish {event_name}: {e}")


@event.listens_for(Session, 'after_rollback')
def _discard_pending_events(session):
    dropped = session.info.pop(PENDING_EVENTS_KEY, [])
    if dropped:
        logger.debug(f"[BROADCAST] Discarded {len(dropped)} event(s) after rollback")
