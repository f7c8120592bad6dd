"""Prometheus metrics for Perseus.

Provides pre-defined metrics for graph queries, searches, and API
performance.
"""

from prometheus_client import Counter, Histogram, Info

# Application info
APP_INFO = Info(
    "perseus",
    "Perseus application information",
)

# Graph query metrics
QUERY_PAGES_FETCHED = Counter(
    "perseus_query_pages_fetched_total",
    "Total number of dependency pages fetched",
    ["direction"],
)

QUERY_RETRIES = Counter(
    "perseus_query_retries_total",
    "Total number of retried queries after transient unavailability",
    ["operation"],
)

TREE_NODES_VISITED = Counter(
    "perseus_tree_nodes_visited_total",
    "Total number of nodes expanded by the dependency tree walker",
    ["direction"],
)

PATHS_FOUND = Counter(
    "perseus_paths_found_total",
    "Total number of dependency paths discovered",
)

PATH_SEARCH_DURATION = Histogram(
    "perseus_path_search_duration_seconds",
    "Time spent searching for dependency paths",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

# API metrics
API_REQUESTS = Counter(
    "perseus_api_requests_total",
    "Total number of API requests",
    ["method", "route", "status"],
)

API_REQUEST_DURATION = Histogram(
    "perseus_api_request_duration_seconds",
    "API request duration",
    ["method", "route"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

API_ERRORS = Counter(
    "perseus_api_errors_total",
    "API error responses by error code",
    ["error_code"],
)


def set_app_info(version: str, environment: str) -> None:
    """Set application info metric.

    Args:
        version: Application version.
        environment: Deployment environment.
    """
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })
