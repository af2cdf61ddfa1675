# prayer_engine/metrics.py

from prometheus_client import Counter, Histogram

# Define Prometheus metrics

# Cache Metrics
CACHE_HITS = Counter('prayer_engine_cache_hits_total', 'Total cache hits', ['cache_type', 'tier'])
CACHE_MISSES = Counter('prayer_engine_cache_misses_total', 'Total cache misses', ['cache_type'])
CACHE_WRITE_FAILURES = Counter('prayer_engine_cache_write_failures_total', 'Durable tier writes that failed', ['cache_type', 'outcome'])

# API Metrics
API_REQUESTS_TOTAL = Counter('prayer_engine_api_requests_total', 'Total API requests', ['adapter_name', 'endpoint', 'status'])
API_REQUEST_DURATION_SECONDS = Histogram('prayer_engine_api_request_duration_seconds', 'API request duration in seconds', ['adapter_name', 'endpoint'])

# Location Metrics
LOCATION_REFRESH_TOTAL = Counter('prayer_engine_location_refresh_total', 'Background location refresh outcomes', ['outcome'])

# Background Task Metrics
BACKGROUND_TASK_RUNS_TOTAL = Counter('prayer_engine_background_task_runs_total', 'Total background task runs', ['task_name', 'status'])
BACKGROUND_TASK_DURATION_SECONDS = Histogram('prayer_engine_background_task_duration_seconds', 'Background task duration in seconds', ['task_name'])
