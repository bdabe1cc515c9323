from prometheus_client import Counter, Histogram, Gauge

# Business Metrics
livey_orders_created_total = Counter(
    "livey_orders_created_total",
    "Total orders created through the public endpoint"
)

livey_sheets_sync_total = Counter(
    "livey_sheets_sync_total",
    "Order to Google Sheets sync attempts",
    ["result"]  # Labels: 'success', 'skipped', 'failed'
)

livey_sheets_connections_removed_total = Counter(
    "livey_sheets_connections_removed_total",
    "Sheets connections deleted after a permanent provider failure",
    ["reason"]  # Labels: 'revoked', 'not_found'
)

livey_sync_sweep_duration_seconds = Histogram(
    "livey_sync_sweep_duration_seconds",
    "Duration of a retry sweep over unsynced orders"
)

livey_sync_queue_depth = Gauge(
    "livey_sync_queue_depth",
    "Orders waiting in the background sync queue"
)
