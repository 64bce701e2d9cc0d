"""Data models for the BerryMX API."""

from typing import Optional
from pydantic import BaseModel

class DeleteResponse(BaseModel):
    """删除条目的响应"""
    ok: bool = True
    id: str

class TranslateResponse(BaseModel):
    text: str

class ErrorResponse(BaseModel):
    """错误响应"""
    error: str
    error_code: Optional[str] = None

class HealthResponse(BaseModel):
    status: str = "healthy"
    timestamp: str
    resources: int
