"""Monitoring middleware for BerryMX."""

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
from .metrics import metrics_collector
import logging

logger = logging.getLogger(__name__)

class PrometheusMiddleware(BaseHTTPMiddleware):
    """Prometheus 监控中间件"""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    @staticmethod
    def _endpoint(request: Request) -> str:
        # 使用路由模板，避免条目 id 造成标签爆炸
        route = request.scope.get("route")
        return getattr(route, "path", None) or "unmatched"

    async def dispatch(self, request: Request, call_next):
        # 排除 metrics 端点，避免重复计数
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        start_time = metrics_collector.track_request(method, request.url.path)
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            logger.error(f"Request error: {str(e)}")
            raise
        finally:
            metrics_collector.track_request_end(start_time, method, self._endpoint(request), status_code)

        return response
