import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from bs4 import Tag
from httpx import AsyncClient

from fetching import fetch_document
from page import Page, as_text, set_inner_html

log = logging.getLogger("uvicorn.error")

CONFIG_PATH = "config/business.json"
LOADED_CLASS = "config-loaded"
LOADED_EVENT = "configLoaded"

# Bound elements stay hidden until the root carries LOADED_CLASS
VISIBILITY_STYLE_ID = "config-visibility"
VISIBILITY_CSS = "[data-config] { visibility: hidden; } .config-loaded [data-config] { visibility: visible; }"


class _Absent:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


def get_nested_value(obj: Any, path: str) -> Any:
    """Resolve a dotted path such as ``contact.phone`` against ``obj``.

    Mappings are descended by key and lists by decimal index. Returns ABSENT
    as soon as a key is missing, an intermediate value is not a container,
    or the final value is null.
    """
    current = obj
    for key in (path or "").split("."):
        if isinstance(current, Mapping):
            if key not in current:
                return ABSENT
            current = current[key]
        elif isinstance(current, (list, tuple)) and key.isascii() and key.isdigit():
            idx = int(key)
            if idx >= len(current):
                return ABSENT
            current = current[idx]
        else:
            return ABSENT
    return ABSENT if current is None else current


class BindingKind(str, Enum):
    TEXT = "text"
    HREF = "href"
    TEL = "tel"
    MAILTO = "mailto"
    SRC = "src"
    ALT = "alt"
    TITLE = "title"
    META_CONTENT = "meta-content"


@dataclass(frozen=True)
class Binding:
    kind: BindingKind
    selector: str
    bind: Callable[[Tag, Dict[str, Any]], bool]
    single: bool = False


def _set_content(el: Tag, value: Any) -> None:
    # Strings carrying markup (e.g. "Mon-Fri<br>Sat") are inserted as HTML
    if isinstance(value, str) and "<" in value:
        set_inner_html(el, value)
    else:
        el.string = as_text(value)


def _set_attr(name: str, prefix: str = "") -> Callable[[Tag, Any], None]:
    def apply(el: Tag, value: Any) -> None:
        el[name] = prefix + as_text(value)
    return apply


def _by_path(marker: str, apply: Callable[[Tag, Any], None]) -> Callable[[Tag, Dict[str, Any]], bool]:
    def bind(el: Tag, config: Dict[str, Any]) -> bool:
        value = get_nested_value(config, el.get(marker) or "")
        if value is ABSENT:
            return False
        apply(el, value)
        return True
    return bind


def _bind_title(el: Tag, config: Dict[str, Any]) -> bool:
    name = get_nested_value(config, "name")
    tagline = get_nested_value(config, "tagline")
    if not name or not tagline:
        return False
    el.string = f"{as_text(name)} - {as_text(tagline)}"
    return True


BINDINGS = (
    Binding(BindingKind.TEXT, "[data-config]", _by_path("data-config", _set_content)),
    Binding(BindingKind.HREF, "[data-config-href]", _by_path("data-config-href", _set_attr("href"))),
    Binding(BindingKind.TEL, "[data-config-tel]", _by_path("data-config-tel", _set_attr("href", "tel:"))),
    Binding(BindingKind.MAILTO, "[data-config-mailto]", _by_path("data-config-mailto", _set_attr("href", "mailto:"))),
    Binding(BindingKind.SRC, "[data-config-src]", _by_path("data-config-src", _set_attr("src"))),
    Binding(BindingKind.ALT, "[data-config-alt]", _by_path("data-config-alt", _set_attr("alt"))),
    Binding(BindingKind.TITLE, "title[data-config-title]", _bind_title, single=True),
    Binding(BindingKind.META_CONTENT, "meta[data-config-content]", _by_path("data-config-content", _set_attr("content"))),
)


def install_visibility_rule(page: Page) -> None:
    page.ensure_style(VISIBILITY_STYLE_ID, VISIBILITY_CSS)


def _reveal(page: Page, config: Optional[Dict[str, Any]]) -> None:
    page.add_root_class(LOADED_CLASS)
    page.dispatch(LOADED_EVENT, config)


def apply_config(page: Page, config: Dict[str, Any]) -> Dict[str, int]:
    """Bind ``config`` into every marked element, then reveal and announce.

    Returns how many elements each binding kind updated.
    """
    counts: Dict[str, int] = {}
    for binding in BINDINGS:
        if binding.single:
            found = page.select_one(binding.selector)
            targets = [found] if found is not None else []
        else:
            targets = page.select(binding.selector)
        counts[binding.kind.value] = sum(1 for el in targets if binding.bind(el, config))
    log.info("business config bound: %s", counts)
    _reveal(page, config)
    return counts


async def load_config(page: Page, *, client: Optional[AsyncClient] = None) -> Optional[Dict[str, Any]]:
    install_visibility_rule(page)
    try:
        config = await fetch_document(page.location, CONFIG_PATH, client=client)
        apply_config(page, config)
    except Exception as e:
        log.error("Error loading business configuration: %s", e)
        # Still reveal so the fallback markup shows
        _reveal(page, None)
        return None
    return config


class BusinessConfig:
    """Entry points shared with other page collaborators."""

    load = staticmethod(load_config)
    get_nested_value = staticmethod(get_nested_value)
