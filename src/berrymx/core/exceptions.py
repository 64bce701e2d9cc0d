from fastapi import HTTPException
from typing import Any, Optional, Dict

class BerryMXException(HTTPException):
    """基础异常类"""
    def __init__(
        self,
        status_code: int,
        detail: Any = None,
        headers: Optional[Dict[str, str]] = None,
        error_code: str = None,
        error_data: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.error_data = error_data or {}

class ValidationError(BerryMXException):
    """请求数据无效"""
    def __init__(self, message: str):
        super().__init__(
            status_code=400,
            detail=message,
            error_code="VALIDATION_ERROR"
        )

class AuthenticationError(BerryMXException):
    """签名认证失败"""
    def __init__(self, reason: str):
        super().__init__(
            status_code=401,
            detail=reason,
            error_code="AUTHENTICATION_FAILED"
        )

class ResourceNotFoundError(BerryMXException):
    """资源或条目未找到"""
    def __init__(self, message: str = "Not found", resource: Optional[str] = None, item_id: Optional[str] = None):
        super().__init__(
            status_code=404,
            detail=message,
            error_code="NOT_FOUND",
            error_data={"resource": resource, "id": item_id}
        )

class MethodNotAllowedError(BerryMXException):
    """请求方法不被允许"""
    def __init__(self, method: str):
        super().__init__(
            status_code=405,
            detail="Method not allowed",
            error_code="METHOD_NOT_ALLOWED",
            error_data={"method": method}
        )

class PayloadTooLargeError(BerryMXException):
    """请求体超过上限"""
    def __init__(self, max_bytes: int):
        super().__init__(
            status_code=413,
            detail="Body too large",
            headers={"Connection": "close"},
            error_code="PAYLOAD_TOO_LARGE",
            error_data={"max_bytes": max_bytes}
        )

class StorageError(BerryMXException):
    """存储错误基类"""
    def __init__(self, message: str, error_data: Optional[Dict[str, Any]] = None):
        super().__init__(
            status_code=500,
            detail=message,
            error_code="STORAGE_ERROR",
            error_data=error_data
        )

class StorageIOError(StorageError):
    """存储 IO 错误"""
    def __init__(self, path: str, operation: str, original_error: Exception):
        super().__init__(
            message=f"Failed to {operation} data",
            error_data={
                "path": path,
                "operation": operation,
                "error_type": type(original_error).__name__,
                "error_message": str(original_error)
            }
        )
        self.error_code = "STORAGE_IO_ERROR"

class UpstreamError(BerryMXException):
    """上游服务（翻译）错误"""
    def __init__(self, message: str):
        super().__init__(
            status_code=502,
            detail=message,
            error_code="UPSTREAM_ERROR"
        )
