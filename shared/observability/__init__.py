from .setup import setup_observability, configure_logging
from .metrics import (
    livey_orders_created_total,
    livey_sheets_sync_total,
    livey_sheets_connections_removed_total,
    livey_sync_sweep_duration_seconds,
    livey_sync_queue_depth
)
