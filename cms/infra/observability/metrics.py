from prometheus_client import Counter, Histogram, make_asgi_app

# 低基数标签：route 使用路由模板，storage 标签只含别名与操作名
REQUESTS = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)

LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency in seconds",
    ["method", "route"],
)

STORAGE_OPERATIONS = Counter(
    "storage_operations_total",
    "Storage browser operations against the object store",
    ["operation", "alias", "outcome"],
)

STORAGE_HEAD_REQUESTS = Counter(
    "storage_head_requests_total",
    "Per-object detail calls issued while filtering by metadata",
    ["outcome"],
)

metrics_app = make_asgi_app()
