import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from bs4 import BeautifulSoup, Doctype, Tag

from fetching import Location

log = logging.getLogger("uvicorn.error")

Listener = Callable[[Any], None]


def set_inner_html(tag: Tag, markup: str) -> None:
    """Replace every child of ``tag`` with the parsed ``markup``."""
    fragment = BeautifulSoup(markup or "", "html.parser")
    tag.clear()
    for node in list(fragment.contents):
        tag.append(node.extract())


def as_text(value: Any) -> str:
    """Stringify a JSON value the way a browser would for textContent/attributes."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join("" if v is None else as_text(v) for v in value)
    if isinstance(value, Mapping):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


class Page:
    """A parsed HTML page plus the location its relative resources resolve against."""

    def __init__(self, markup: str, location: Optional[Location] = None):
        self.location = location
        self.soup = BeautifulSoup(markup or "", "html.parser")
        self._listeners: Dict[str, List[Listener]] = {}

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Page":
        path = Path(path)
        return cls(path.read_text(encoding="utf-8"), location=path)

    # ── tree helpers ───────────────────────────────────────────────────────
    @property
    def root(self) -> Tag:
        html = self.soup.find("html")
        if html is None:
            # Fragment markup: wrap everything except the doctype in <html>
            html = self.soup.new_tag("html")
            for node in list(self.soup.contents):
                if isinstance(node, Doctype):
                    continue
                html.append(node.extract())
            self.soup.append(html)
        return html

    @property
    def head(self) -> Tag:
        head = self.soup.find("head")
        if head is None:
            head = self.soup.new_tag("head")
            self.root.insert(0, head)
        return head

    def select(self, selector: str) -> List[Tag]:
        return list(self.soup.select(selector))

    def select_one(self, selector: str) -> Optional[Tag]:
        return self.soup.select_one(selector)

    def get_element_by_id(self, element_id: str) -> Optional[Tag]:
        return self.soup.find(id=element_id)

    def has_root_class(self, name: str) -> bool:
        return name in (self.root.get("class") or [])

    def add_root_class(self, name: str) -> None:
        classes = list(self.root.get("class") or [])
        if name not in classes:
            classes.append(name)
            self.root["class"] = classes

    def ensure_style(self, style_id: str, css: str) -> Tag:
        """Add a ``<style id=style_id>`` to the head unless one is already there."""
        existing = self.soup.find("style", attrs={"id": style_id})
        if existing is not None:
            return existing
        style = self.soup.new_tag("style", attrs={"id": style_id})
        style.string = css
        self.head.append(style)
        return style

    # ── page-level events ──────────────────────────────────────────────────
    def add_listener(self, event: str, callback: Listener) -> None:
        self._listeners.setdefault(event, []).append(callback)

    def dispatch(self, event: str, detail: Any = None) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(detail)
            except Exception:
                log.exception("page listener for %s failed", event)

    def to_html(self) -> str:
        return str(self.soup)
