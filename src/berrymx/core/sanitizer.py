"""Allowlist sanitizer for untrusted resource payloads.

Every resource declares its fields in :mod:`berrymx.core.resources`. Values
are normalized per field kind; anything that does not fit is dropped rather
than rejected, so the only failures surfaced to callers are "no valid
fields" and "missing required fields".
"""

import math
import re
import logging
from typing import Any, Dict, List, NamedTuple, Optional, Union

from .resources import FieldKind, ResourceSpec, SEO_FIELDS, get_resource

logger = logging.getLogger(__name__)

LANGUAGES = ("tr", "en")
MAX_PAGE_DEPTH = 6
NO_VALID_FIELDS = "No valid fields provided"

_LIST_SEPARATOR = re.compile(r"\r?\n|,")
_SLUG_JUNK = re.compile(r"[^a-z0-9]+")

I18nText = Union[str, Dict[str, str]]


class SanitizeResult(NamedTuple):
    cleaned: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _scalar_text(value: Any) -> Optional[str]:
    """字符串或数字转为去空白文本，空值返回 None"""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value
    elif isinstance(value, int):
        text = str(value)
    elif isinstance(value, float):
        if not math.isfinite(value):
            return None
        text = str(int(value)) if value.is_integer() else repr(value)
    else:
        return None
    text = text.strip()
    return text or None


def _text_list(values: List[Any]) -> List[str]:
    return [text for text in (_scalar_text(v) for v in values) if text]


def _split_text(value: str) -> List[str]:
    return [part.strip() for part in _LIST_SEPARATOR.split(value) if part.strip()]


def normalize_i18n(value: Any) -> Optional[I18nText]:
    """Plain text, or a ``{"tr": ..., "en": ...}`` object of trimmed text."""
    if value is None:
        return None
    if not isinstance(value, dict):
        return _scalar_text(value)
    cleaned = {}
    for lang in LANGUAGES:
        text = _scalar_text(value.get(lang))
        if text:
            cleaned[lang] = text
    return cleaned or None


def normalize_i18n_list(value: Any) -> Union[List[str], Dict[str, List[str]], None]:
    """List, delimited string, or a bilingual object of either."""
    if isinstance(value, list):
        return _text_list(value) or None
    if isinstance(value, str):
        return _split_text(value) or None
    if not isinstance(value, dict):
        return None
    cleaned = {}
    for lang in LANGUAGES:
        entry = value.get(lang)
        if isinstance(entry, list):
            items = _text_list(entry)
        elif isinstance(entry, str):
            items = _split_text(entry)
        else:
            continue
        if items:
            cleaned[lang] = items
    return cleaned or None


def normalize_stats(value: Any) -> Optional[List[Dict[str, I18nText]]]:
    if not isinstance(value, list):
        return None
    items = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        label = normalize_i18n(entry.get("label"))
        stat_value = normalize_i18n(entry.get("value"))
        if not label and not stat_value:
            continue
        items.append({"label": label or "", "value": stat_value or ""})
    return items or None


def normalize_slug(value: Any) -> Optional[str]:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return None
    text = value if isinstance(value, str) else _scalar_text(value) or ""
    slug = _SLUG_JUNK.sub("-", text.lower().strip()).strip("-")
    return slug or None


def normalize_keywords(value: Any) -> Optional[I18nText]:
    if isinstance(value, list):
        return ", ".join(_text_list(value)) or None
    return normalize_i18n(value)


def _clean_tree_value(value: Any, depth: int) -> Any:
    if isinstance(value, dict):
        return sanitize_page_tree(value, depth + 1)
    if isinstance(value, list):
        items = []
        for entry in value:
            if isinstance(entry, dict):
                nested = sanitize_page_tree(entry, depth + 1)
                if nested:
                    items.append(nested)
            else:
                text = _scalar_text(entry)
                if text:
                    items.append(text)
        return items or None
    return _scalar_text(value)


def sanitize_page_tree(payload: Any, depth: int = 0) -> Optional[Dict[str, Any]]:
    """递归清洗页面树；超过最大深度的层级被丢弃，空层级不保留"""
    if not isinstance(payload, dict):
        return None
    if depth > MAX_PAGE_DEPTH:
        logger.debug(f"Page tree deeper than {MAX_PAGE_DEPTH} levels dropped")
        return None
    cleaned = {}
    for key, value in payload.items():
        result = _clean_tree_value(value, depth)
        if result:
            cleaned[key] = result
    return cleaned or None


def sanitize_seo_page(payload: Any) -> Optional[Dict[str, Any]]:
    """单个页面的 SEO 覆盖设置"""
    if not isinstance(payload, dict):
        return None
    cleaned = {}
    for key in SEO_FIELDS:
        value = payload.get(key)
        if key == "keywords" and isinstance(value, list):
            result = normalize_keywords(value)
        else:
            result = _clean_tree_value(value, 1)
        if result:
            cleaned[key] = result
    return cleaned or None


def sanitize_page_map(value: Any) -> Optional[Dict[str, Dict[str, Any]]]:
    if not isinstance(value, dict):
        return None
    pages = {}
    for page_key, page in value.items():
        cleaned = sanitize_seo_page(page)
        if cleaned:
            pages[page_key] = cleaned
    return pages or None


_NORMALIZERS = {
    FieldKind.TEXT: _scalar_text,
    FieldKind.I18N: normalize_i18n,
    FieldKind.I18N_LIST: normalize_i18n_list,
    FieldKind.STATS: normalize_stats,
    FieldKind.SLUG: normalize_slug,
    FieldKind.KEYWORDS: normalize_keywords,
    FieldKind.PAGE_MAP: sanitize_page_map,
}


def clean_fields(spec: ResourceSpec, payload: Any) -> Dict[str, Any]:
    """Apply the resource allowlist; unknown keys never reach the output."""
    if not isinstance(payload, dict):
        payload = {}
    cleaned = {}
    for name, kind in spec.fields or ():
        value = payload.get(name)
        if value is None:
            continue
        normalized = _NORMALIZERS[kind](value)
        if normalized:
            cleaned[name] = normalized
    return cleaned


def sanitize(resource: Union[str, ResourceSpec], payload: Any, allow_partial: bool = False) -> SanitizeResult:
    """清洗请求数据

    ``allow_partial`` is used for updates: any subset of fields may be sent
    but at least one must survive cleaning. Without it the resource's
    required fields must all be present.
    """
    spec = resource if isinstance(resource, ResourceSpec) else get_resource(resource)
    if spec is None:
        return SanitizeResult(error=NO_VALID_FIELDS)

    if spec.is_page_tree:
        cleaned = sanitize_page_tree(payload)
        if not cleaned:
            return SanitizeResult(error=NO_VALID_FIELDS)
        return SanitizeResult(cleaned=cleaned)

    cleaned = clean_fields(spec, payload)

    if allow_partial:
        if not cleaned:
            return SanitizeResult(error=NO_VALID_FIELDS)
        return SanitizeResult(cleaned=cleaned)

    missing = [name for name in spec.required if not cleaned.get(name)]
    if missing:
        return SanitizeResult(error=f"Missing required fields: {', '.join(missing)}")
    return SanitizeResult(cleaned=cleaned)
