"""
Prometheus registry and marketplace counters.

Services increment these after their own work; the metrics blueprint
exposes them on /metrics together with the HTTP request metrics.
"""
from prometheus_client import Counter, CollectorRegistry, multiprocess, REGISTRY
import os

# Gunicorn workers share metrics through PROMETHEUS_MULTIPROC_DIR
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
    metric_registry = None
else:
    registry = REGISTRY
    metric_registry = REGISTRY

stock_movements_total = Counter(
    'roomshop_stock_movements_total',
    'Units moved in or out of product stock',
    ['direction', 'reason'],
    registry=metric_registry
)

insufficient_stock_total = Counter(
    'roomshop_insufficient_stock_total',
    'Reservations refused for lack of stock',
    registry=metric_registry
)

orders_placed_total = Counter(
    'roomshop_orders_placed_total',
    'Orders created',
    ['source'],
    registry=metric_registry
)

order_transitions_total = Counter(
    'roomshop_order_transitions_total',
    'Order batch status transitions',
    ['status'],
    registry=metric_registry
)

coin_movements_total = Counter(
    'roomshop_coin_movements_total',
    'Coins credited or debited through the ledger',
    ['direction', 'source_type'],
    registry=metric_registry
)
