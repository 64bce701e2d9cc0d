"""API routes for BerryMX.

``/api/<resource>[/<id>]`` dispatches on the resource mode. Reads are
public; every mutation is signature-checked except the public contact
form (POST without id on ``messages``).
"""

import json
import uuid
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from berrymx.core.exceptions import (
    AuthenticationError,
    MethodNotAllowedError,
    PayloadTooLargeError,
    ResourceNotFoundError,
    ValidationError,
)
from berrymx.core.resources import ResourceSpec, get_resource
from berrymx.core.sanitizer import sanitize
from berrymx.core.store import ResourceStore
from .models import DeleteResponse, TranslateResponse

logger = logging.getLogger(__name__)

ALL_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH"]
RESERVED_FIELDS = ("id", "createdAt", "updatedAt")

router = APIRouter(prefix="/api", tags=["content"])


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def json_response(content: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=content, status_code=status_code, headers={"Cache-Control": "no-store"})


def _request_path(request: Request) -> str:
    # ASGI 的 path 已经是百分号解码后的路径
    return request.scope.get("path") or request.url.path


async def read_body(request: Request) -> bytes:
    """读取请求体，超过上限时中止"""
    max_bytes = request.app.state.config.max_body_bytes
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        raise PayloadTooLargeError(max_bytes)

    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > max_bytes:
            logger.warning(f"Body over {max_bytes} bytes on {request.method} {_request_path(request)}")
            raise PayloadTooLargeError(max_bytes)
    return bytes(body)


def parse_json(body: bytes) -> Any:
    if not body:
        return {}
    try:
        return json.loads(body)
    except (ValueError, RecursionError):
        # 过深的嵌套同样视为无效 JSON
        raise ValidationError("Invalid JSON body")


async def require_admin(request: Request, body: bytes) -> None:
    verifier = request.app.state.verifier
    # ssh-keygen 是阻塞调用，放到线程池执行
    result = await run_in_threadpool(
        verifier.verify, request.method, _request_path(request), body, request.headers
    )
    if not result.ok:
        raise AuthenticationError(result.error)


def _merge(base: Dict[str, Any], cleaned: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    merged.update({k: v for k, v in cleaned.items() if k not in RESERVED_FIELDS})
    return merged


def _cleaned_or_error(spec: ResourceSpec, payload: Any, allow_partial: bool) -> Dict[str, Any]:
    result = sanitize(spec, payload, allow_partial=allow_partial)
    if not result.ok:
        raise ValidationError(result.error)
    return result.cleaned


def _find_index(items, item_id: str) -> int:
    for index, entry in enumerate(items):
        if isinstance(entry, dict) and entry.get("id") == item_id:
            return index
    return -1


async def handle_singleton(request: Request, spec: ResourceSpec, item_id: Optional[str]) -> JSONResponse:
    store: ResourceStore = request.app.state.store
    if item_id:
        raise ValidationError("Resource does not support ids")

    if request.method == "GET":
        return json_response(await store.load(spec))
    if request.method not in ("POST", "PUT"):
        raise MethodNotAllowedError(request.method)

    body = await read_body(request)
    await require_admin(request, body)
    cleaned = _cleaned_or_error(spec, parse_json(body), allow_partial=True)

    async with store.lock(spec):
        current = await store.load(spec)
        now = utc_now()
        updated = _merge(current, cleaned)
        updated["updatedAt"] = now
        if not current.get("createdAt"):
            updated["createdAt"] = now
        await store.save(spec, updated)

    logger.info(f"Updated {spec.name}: {', '.join(cleaned)}")
    return json_response(updated)


async def handle_collection(request: Request, spec: ResourceSpec, item_id: Optional[str]) -> JSONResponse:
    store: ResourceStore = request.app.state.store
    method = request.method

    if method == "GET":
        data = await store.load(spec)
        if item_id is None:
            return json_response(data)
        index = _find_index(data, item_id)
        if index == -1:
            raise ResourceNotFoundError(resource=spec.name, item_id=item_id)
        return json_response(data[index])

    if method not in ("POST", "PUT", "DELETE"):
        raise MethodNotAllowedError(method)

    body = await read_body(request)

    # 唯一的匿名写入：联系表单提交
    is_public_create = spec.public_create and method == "POST" and item_id is None
    if not is_public_create:
        await require_admin(request, body)

    if method == "DELETE":
        if not item_id:
            raise ValidationError("Missing resource id")
        async with store.lock(spec):
            data = await store.load(spec)
            remaining = [e for e in data if not (isinstance(e, dict) and e.get("id") == item_id)]
            if len(remaining) == len(data):
                raise ResourceNotFoundError(resource=spec.name, item_id=item_id)
            await store.save(spec, remaining)
        logger.info(f"Deleted {spec.name}/{item_id}")
        return json_response(DeleteResponse(id=item_id).model_dump())

    payload = parse_json(body)

    if method == "POST":
        if item_id:
            raise ValidationError("POST does not accept resource id")
        cleaned = _cleaned_or_error(spec, payload, allow_partial=False)
        item = _merge({"id": str(uuid.uuid4()), "createdAt": utc_now()}, cleaned)
        async with store.lock(spec):
            data = await store.load(spec)
            data.insert(0, item)
            await store.save(spec, data)
        logger.info(f"Created {spec.name}/{item['id']}")
        return json_response(item, status_code=201)

    if not item_id:
        raise ValidationError("Missing resource id")
    cleaned = _cleaned_or_error(spec, payload, allow_partial=True)
    async with store.lock(spec):
        data = await store.load(spec)
        index = _find_index(data, item_id)
        if index == -1:
            raise ResourceNotFoundError(resource=spec.name, item_id=item_id)
        updated = _merge(data[index], cleaned)
        updated["updatedAt"] = utc_now()
        data[index] = updated
        await store.save(spec, data)
    logger.info(f"Updated {spec.name}/{item_id}: {', '.join(cleaned)}")
    return json_response(updated)


async def dispatch(request: Request, resource: str, item_id: Optional[str] = None) -> JSONResponse:
    spec = get_resource(resource)
    if spec is None:
        raise ResourceNotFoundError("Unknown resource", resource=resource)
    if spec.is_collection:
        return await handle_collection(request, spec, item_id)
    return await handle_singleton(request, spec, item_id)


def _text(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return ""
    return str(value).strip()


# 翻译代理需在 /{resource} 之前注册
@router.api_route("/translate/", methods=ALL_METHODS, include_in_schema=False)
@router.api_route("/translate", methods=ALL_METHODS, summary="Translate text for the admin panel")
async def translate(request: Request):
    if request.method != "POST":
        raise MethodNotAllowedError(request.method)
    body = await read_body(request)
    await require_admin(request, body)
    payload = parse_json(body)
    if not isinstance(payload, dict):
        payload = {}

    text = _text(payload.get("text"))
    source = _text(payload.get("source")) or "tr"
    target = _text(payload.get("target")) or "en"
    if not text:
        raise ValidationError("Missing text")

    translated = await request.app.state.translator.translate(text, source=source, target=target)
    return json_response(TranslateResponse(text=translated).model_dump())


@router.api_route("/{resource}/", methods=ALL_METHODS, include_in_schema=False)
@router.api_route("/{resource}", methods=ALL_METHODS, summary="List, read or create content")
async def resource_root(resource: str, request: Request):
    return await dispatch(request, resource)


@router.api_route("/{resource}/{item_id}/", methods=ALL_METHODS, include_in_schema=False)
@router.api_route("/{resource}/{item_id}", methods=ALL_METHODS, summary="Read, update or delete one item")
async def resource_item(resource: str, item_id: str, request: Request):
    return await dispatch(request, resource, item_id)
