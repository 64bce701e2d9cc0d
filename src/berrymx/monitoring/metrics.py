import time
import logging
from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
)
from fastapi import Response

logger = logging.getLogger(__name__)

# 创建一个新的注册表
REGISTRY = CollectorRegistry()

# 请求相关指标
REQUEST_COUNT = Counter(
    'berrymx_requests_total',
    'Total number of requests',
    ['method', 'endpoint', 'status'],
    registry=REGISTRY
)

REQUEST_LATENCY = Histogram(
    'berrymx_request_latency_seconds',
    'Request latency in seconds',
    ['method', 'endpoint'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    registry=REGISTRY
)

ACTIVE_REQUESTS = Gauge(
    'berrymx_active_requests',
    'Number of active requests',
    registry=REGISTRY
)

# 存储相关指标
STORAGE_OPERATIONS = Counter(
    'berrymx_storage_operations_total',
    'Number of resource file operations',
    ['operation', 'status'],
    registry=REGISTRY
)

# 签名认证指标
SIGNATURE_VERIFICATIONS = Counter(
    'berrymx_signature_verifications_total',
    'Number of admin signature checks',
    ['result'],
    registry=REGISTRY
)


class MetricsCollector:
    """指标收集器"""

    def track_request(self, method: str, endpoint: str):
        """跟踪请求开始"""
        ACTIVE_REQUESTS.inc()
        return time.time()

    def track_request_end(self, start_time: float, method: str, endpoint: str, status: int):
        """跟踪请求结束"""
        try:
            duration = time.time() - start_time
            REQUEST_COUNT.labels(method=method, endpoint=endpoint, status=status).inc()
            REQUEST_LATENCY.labels(method=method, endpoint=endpoint).observe(duration)
            ACTIVE_REQUESTS.dec()
        except Exception as e:
            logger.error(f"Error tracking request metrics: {str(e)}")

    def track_storage_operation(self, operation: str, success: bool):
        """跟踪存储操作"""
        status = 'success' if success else 'error'
        STORAGE_OPERATIONS.labels(operation=operation, status=status).inc()

    def track_verification(self, ok: bool):
        SIGNATURE_VERIFICATIONS.labels(result='ok' if ok else 'rejected').inc()


# 创建全局指标收集器实例
metrics_collector = MetricsCollector()

async def metrics_endpoint():
    """Prometheus 指标端点处理函数"""
    try:
        return Response(
            generate_latest(REGISTRY),
            media_type=CONTENT_TYPE_LATEST
        )
    except Exception as e:
        logger.error(f"Error generating metrics: {str(e)}")
        return Response(
            content="Error generating metrics",
            status_code=500
        )
