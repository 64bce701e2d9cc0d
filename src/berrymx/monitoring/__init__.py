"""BerryMX monitoring module."""

from .metrics import metrics_collector, metrics_endpoint
from .middleware import PrometheusMiddleware

__all__ = ['metrics_collector', 'metrics_endpoint', 'PrometheusMiddleware']
