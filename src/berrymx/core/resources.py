"""Resource registry: the closed set of content types and their field schemas."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


class ResourceMode(str, Enum):
    COLLECTION = "collection"
    SINGLETON = "singleton"


class FieldKind(str, Enum):
    """字段类型，决定清洗规则"""
    TEXT = "text"
    I18N = "i18n"
    I18N_LIST = "i18n_list"
    STATS = "stats"
    SLUG = "slug"
    KEYWORDS = "keywords"
    PAGE_MAP = "page_map"


@dataclass(frozen=True)
class ResourceSpec:
    name: str
    file: str
    mode: ResourceMode
    # 有序字段表；None 表示整个文档是自由结构的页面树
    fields: Optional[Tuple[Tuple[str, FieldKind], ...]] = None
    required: Tuple[str, ...] = ()
    # 允许匿名 POST（仅限不带 id 的创建）
    public_create: bool = False

    @property
    def is_collection(self) -> bool:
        return self.mode is ResourceMode.COLLECTION

    @property
    def is_page_tree(self) -> bool:
        return self.fields is None

    @property
    def empty(self):
        return [] if self.is_collection else {}

    def field_names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.fields or ())


SEO_FIELDS: Tuple[str, ...] = (
    "title",
    "description",
    "keywords",
    "ogImage",
    "ogVideo",
    "ogVideoType",
    "canonical",
    "canonicalBase",
    "robots",
    "themeColor",
    "siteName",
    "twitterCard",
    "twitterImage",
    "twitterPlayer",
    "ogType",
)

_T = FieldKind.TEXT
_I = FieldKind.I18N


def _seo_schema():
    kinds = {"title": _I, "description": _I, "keywords": FieldKind.KEYWORDS}
    schema = tuple((name, kinds.get(name, _T)) for name in SEO_FIELDS)
    return schema + (("pages", FieldKind.PAGE_MAP),)


RESOURCES: Dict[str, ResourceSpec] = {
    spec.name: spec
    for spec in (
        ResourceSpec(
            name="projects",
            file="projects.json",
            mode=ResourceMode.COLLECTION,
            fields=(
                ("title", _I),
                ("summary", _I),
                ("stack", FieldKind.I18N_LIST),
                ("status", _I),
                ("year", _T),
            ),
            required=("title",),
        ),
        ResourceSpec(
            name="software",
            file="software.json",
            mode=ResourceMode.COLLECTION,
            fields=(
                ("name", _I),
                ("type", _I),
                ("status", _I),
                ("description", _I),
                ("downloadUrl", _T),
            ),
            required=("name",),
        ),
        ResourceSpec(
            name="news",
            file="news.json",
            mode=ResourceMode.COLLECTION,
            fields=(
                ("title", _I),
                ("date", _T),
                ("slug", FieldKind.SLUG),
                ("summary", _I),
                ("content", _I),
                ("metaTitle", _I),
                ("metaDescription", _I),
                ("ogImage", _T),
                ("ogVideo", _T),
                ("ogVideoType", _T),
                ("canonical", _T),
            ),
            required=("title",),
        ),
        ResourceSpec(
            name="messages",
            file="messages.json",
            mode=ResourceMode.COLLECTION,
            fields=(
                ("name", _I),
                ("email", _T),
                ("message", _T),
                ("phone", _T),
            ),
            required=("name", "email", "message"),
            public_create=True,
        ),
        ResourceSpec(
            name="about",
            file="about.json",
            mode=ResourceMode.SINGLETON,
            fields=(
                ("title", _I),
                ("summary", _I),
                ("highlights", FieldKind.I18N_LIST),
                ("stats", FieldKind.STATS),
            ),
            required=("title",),
        ),
        ResourceSpec(
            name="seo",
            file="seo.json",
            mode=ResourceMode.SINGLETON,
            fields=_seo_schema(),
        ),
        ResourceSpec(
            name="pages",
            file="pages.json",
            mode=ResourceMode.SINGLETON,
        ),
    )
}


def get_resource(name: str) -> Optional[ResourceSpec]:
    return RESOURCES.get(name)
