import html
import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from bs4 import Tag
from httpx import AsyncClient

import settings
from fetching import fetch_document
from page import Page, as_text, set_inner_html

log = logging.getLogger("uvicorn.error")

MENU_PATH = "config/menu.json"
FULL_CONTAINER_ID = "menu-container"
PREVIEW_CONTAINER_ID = "menu-preview"

DEFAULT_SUBTITLE = "Special Selection"
DEFAULT_IMAGE = "./assets/images/menu/menu-1.png"
POPULAR_LABEL = "Popular"

SHAPE_EVEN = '<img src="./assets/images/shapes/shape-5.png" width="921" height="1036" loading="lazy" alt="shape" class="shape shape-2 move-anim">'
SHAPE_ODD = '<img src="./assets/images/shapes/shape-6.png" width="343" height="345" loading="lazy" alt="shape" class="shape shape-3 move-anim">'

# Decorative plate-and-cutlery graphic used instead of a stock photo
PLACEHOLDER_SVG = (
    '<svg class="img-cover menu-placeholder" xmlns="http://www.w3.org/2000/svg" viewBox="0 0 120 120" aria-hidden="true" focusable="false">'
    '<rect width="120" height="120" fill="#1b1b1b"/>'
    '<circle cx="60" cy="60" r="30" fill="none" stroke="#c9ab81" stroke-width="2"/>'
    '<circle cx="60" cy="60" r="21" fill="none" stroke="#c9ab81" stroke-width="1" opacity=".6"/>'
    '<path d="M22 38v18m-4-18v12a4 4 0 0 0 8 0V38M22 56v28" stroke="#c9ab81" stroke-width="2" fill="none" stroke-linecap="round"/>'
    '<path d="M98 38c-5 4-6 12-6 20h6v26" stroke="#c9ab81" stroke-width="2" fill="none" stroke-linecap="round"/>'
    '</svg>'
)


class ImageFallback(str, Enum):
    PATH = "path"
    PLACEHOLDER = "placeholder"


class BadgeSource(str, Enum):
    POPULAR = "popular"
    DIETARY = "dietary"
    BADGES = "badges"


# Precedence order matters: the first matching tag wins
DIETARY_BADGES: Tuple[Tuple[str, str], ...] = (
    ("vegan", "Vegan"),
    ("vegetarian", "Vegetarian"),
    ("gluten-free", "Gluten-Free"),
)


@dataclass(frozen=True)
class MenuOptions:
    image_fallback: ImageFallback = ImageFallback.PATH
    default_image: str = DEFAULT_IMAGE
    badge_precedence: Tuple[BadgeSource, ...] = (BadgeSource.POPULAR, BadgeSource.DIETARY, BadgeSource.BADGES)
    preview_limit: int = 6
    popular_threshold: float = 90

    @classmethod
    def from_settings(cls) -> "MenuOptions":
        try:
            fallback = ImageFallback(settings.MENU_IMAGE_FALLBACK)
        except ValueError:
            log.warning("Unknown MENU_IMAGE_FALLBACK=%r; using 'path'", settings.MENU_IMAGE_FALLBACK)
            fallback = ImageFallback.PATH
        return cls(
            image_fallback=fallback,
            default_image=settings.MENU_DEFAULT_IMAGE or DEFAULT_IMAGE,
            preview_limit=settings.MENU_PREVIEW_LIMIT,
        )


@dataclass
class MenuItem:
    name: str
    price: float = 0.0
    description: str = ""
    image: Optional[str] = None
    popular: bool = False
    badges: List[str] = field(default_factory=list)
    dietary: List[str] = field(default_factory=list)
    like_percentage: Optional[float] = None


@dataclass
class Category:
    name: str
    slug: str
    subtitle: str = DEFAULT_SUBTITLE
    items: List[MenuItem] = field(default_factory=list)


# ────────────────────────────────────────────────────────────────────────────
# Normalization: both historical feed shapes -> Category/MenuItem
# ────────────────────────────────────────────────────────────────────────────
def safe(s: Any) -> str:
    return html.escape("" if s is None else str(s), quote=True)


# "1,250.00" is a thousands separator; "12,50" is not a price we can read
_THOUSANDS = re.compile(r"^\d{1,3}(?:,\d{3})+(?:\.\d+)?$")


def _text(value: Any) -> str:
    return "" if value is None else as_text(value)


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            num = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        raw = value.strip().lstrip("$")
        if "," in raw:
            if not _THOUSANDS.match(raw):
                return None
            raw = raw.replace(",", "")
        try:
            num = float(raw)
        except ValueError:
            return None
    else:
        return None
    return num if math.isfinite(num) else None


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


def _str_list(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [str(v) for v in value if v is not None and str(v).strip()]


def normalize_item(raw: Any) -> Optional[MenuItem]:
    if not isinstance(raw, Mapping):
        return None
    image = raw.get("image") or raw.get("image_url") or raw.get("img")
    image = image.strip() if isinstance(image, str) else ""
    return MenuItem(
        name=_text(raw.get("name")),
        price=_number(raw.get("price")) or 0.0,
        description=_text(raw.get("description")),
        image=image or None,
        popular=_flag(raw.get("popular")),
        badges=_str_list(raw.get("badges")),
        dietary=_str_list(raw.get("dietary")),
        like_percentage=_number(raw.get("like_percentage")),
    )


def normalize_category(raw: Any) -> Optional[Category]:
    if not isinstance(raw, Mapping):
        return None
    name = _text(raw.get("category_name") or raw.get("name"))
    explicit_id = raw.get("id") or raw.get("slug")
    slug = str(explicit_id).strip() if explicit_id not in (None, "") else slugify(name)
    subtitle = raw.get("subtitle")
    raw_items = raw.get("items")
    items = [it for it in map(normalize_item, raw_items if isinstance(raw_items, list) else []) if it is not None]
    return Category(
        name=name,
        slug=slug,
        subtitle=_text(subtitle) if subtitle else DEFAULT_SUBTITLE,
        items=items,
    )


def normalize_catalog(doc: Any) -> List[Category]:
    """Categories from ``data.menu_categories`` (checked first) or ``categories``."""
    if not isinstance(doc, Mapping):
        return []
    data = doc.get("data")
    if isinstance(data, Mapping) and data.get("menu_categories") is not None:
        raw = data.get("menu_categories")
    else:
        raw = doc.get("categories")
    if not isinstance(raw, list):
        return []
    return [c for c in map(normalize_category, raw) if c is not None]


# ────────────────────────────────────────────────────────────────────────────
# Formatting helpers
# ────────────────────────────────────────────────────────────────────────────
_ACCENT_FOLDS = (("àáâãäå", "a"), ("èéêë", "e"), ("ìíîï", "i"), ("òóôõö", "o"), ("ùúûü", "u"), ("ç", "c"))
_FOLD_TABLE = str.maketrans({ch: base for chars, base in _ACCENT_FOLDS for ch in chars})
_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    folded = (text or "").lower().translate(_FOLD_TABLE)
    return _NON_SLUG.sub("-", folded).strip("-")


def section_ids(categories: List[Category]) -> List[str]:
    """One DOM id per category. Empty slugs fall back to ``section-<n>``;
    repeated slugs get ``-2``, ``-3`` ... so ids stay unique within a page."""
    used = set()
    ids: List[str] = []
    for n, cat in enumerate(categories, 1):
        base = cat.slug or f"section-{n}"
        candidate, k = base, 1
        while candidate in used:
            k += 1
            candidate = f"{base}-{k}"
        used.add(candidate)
        ids.append(candidate)
    return ids


def format_price(price: Any) -> str:
    return f"${(_number(price) or 0.0):.2f}"


def _dietary_badge(tags: List[str]) -> Optional[str]:
    normalized = {re.sub(r"[\s_]+", "-", t.strip().lower()) for t in tags}
    for key, label in DIETARY_BADGES:
        if key in normalized:
            return label
    return None


def badge_for(item: MenuItem, options: Optional[MenuOptions] = None) -> Optional[str]:
    options = options or MenuOptions()
    for source in options.badge_precedence:
        if source is BadgeSource.POPULAR and item.popular:
            return POPULAR_LABEL
        if source is BadgeSource.DIETARY:
            label = _dietary_badge(item.dietary)
            if label:
                return label
        if source is BadgeSource.BADGES and item.badges:
            return item.badges[0]
    return None


def is_popular(item: MenuItem, options: Optional[MenuOptions] = None) -> bool:
    options = options or MenuOptions()
    if item.popular or POPULAR_LABEL in item.badges:
        return True
    return item.like_percentage is not None and item.like_percentage >= options.popular_threshold


def select_popular_items(categories: List[Category], options: Optional[MenuOptions] = None) -> List[MenuItem]:
    """Popular items in discovery order; when nothing qualifies, the first
    item of every non-empty category stands in. Truncated to the preview limit."""
    options = options or MenuOptions()
    picked = [it for cat in categories for it in cat.items if is_popular(it, options)]
    if not picked:
        picked = [cat.items[0] for cat in categories if cat.items]
    return picked[:max(options.preview_limit, 0)]


# ────────────────────────────────────────────────────────────────────────────
# Markup
# ────────────────────────────────────────────────────────────────────────────
def _figure_html(item: MenuItem, options: MenuOptions) -> str:
    if item.image:
        src = item.image
    elif options.image_fallback is ImageFallback.PLACEHOLDER:
        return PLACEHOLDER_SVG
    else:
        src = options.default_image or DEFAULT_IMAGE
    return f'<img src="{safe(src)}" loading="lazy" alt="{safe(item.name)}" class="img-cover">'


def render_item_card(item: MenuItem, options: Optional[MenuOptions] = None) -> str:
    options = options or MenuOptions()
    badge = badge_for(item, options)
    badge_html = f'<span class="badge label-1">{safe(badge)}</span>' if badge else ""
    return f"""
      <li>
        <div class="menu-card hover:card">
          <figure class="card-banner">
            {_figure_html(item, options)}
          </figure>
          <div>
            <div class="title-wrapper">
              <h3 class="title-3">
                <a href="#" class="card-title">{safe(item.name)}</a>
              </h3>
              {badge_html}
              <span class="span title-2">{format_price(item.price)}</span>
            </div>
            <p class="card-text label-1">
              {safe(item.description)}
            </p>
          </div>
        </div>
      </li>
    """


def render_section(category: Category, index: int, section_id: str, options: Optional[MenuOptions] = None) -> str:
    options = options or MenuOptions()
    bg_class = " bg-black-10" if index % 2 == 1 else ""
    shape_html = SHAPE_EVEN if index % 2 == 0 else SHAPE_ODD
    items_html = "".join(render_item_card(it, options) for it in category.items)
    return f"""
      <section class="section menu{bg_class}" aria-label="{safe(section_id)}-menu" id="{safe(section_id)}">
        <div class="container">
          <p class="section-subtitle text-center label-2">{safe(category.subtitle)}</p>
          <h2 class="headline-1 section-title text-center">{safe(category.name)}</h2>
          <ul class="grid-list">
            {items_html}
          </ul>
          {shape_html}
        </div>
      </section>
    """


def build_menu_html(doc: Any, options: Optional[MenuOptions] = None) -> Tuple[str, int]:
    categories = normalize_catalog(doc)
    ids = section_ids(categories)
    markup = "".join(
        render_section(cat, i, sid, options) for i, (cat, sid) in enumerate(zip(categories, ids))
    )
    return markup, len(categories)


def build_preview_html(doc: Any, options: Optional[MenuOptions] = None) -> Tuple[str, int]:
    items = select_popular_items(normalize_catalog(doc), options)
    return "".join(render_item_card(it, options) for it in items), len(items)


def render_menu(doc: Any, container: Tag, options: Optional[MenuOptions] = None) -> int:
    """Replace ``container``'s content with one section per category."""
    markup, count = build_menu_html(doc, options)
    set_inner_html(container, markup)
    return count


def render_menu_preview(doc: Any, container: Tag, options: Optional[MenuOptions] = None) -> int:
    """Replace ``container``'s content with the popular-items cards."""
    markup, count = build_preview_html(doc, options)
    set_inner_html(container, markup)
    return count


def apply_menu(page: Page, menu: Dict[str, Any], options: Optional[MenuOptions] = None) -> Dict[str, int]:
    options = options or MenuOptions.from_settings()
    counts: Dict[str, int] = {}
    full = page.get_element_by_id(FULL_CONTAINER_ID)
    if full is not None:
        counts["sections"] = render_menu(menu, full, options)
    preview = page.get_element_by_id(PREVIEW_CONTAINER_ID)
    if preview is not None:
        counts["preview_items"] = render_menu_preview(menu, preview, options)
    if not counts:
        log.info("menu loaded but page has no #%s or #%s container", FULL_CONTAINER_ID, PREVIEW_CONTAINER_ID)
    else:
        log.info("menu rendered: %s", counts)
    return counts


async def load_menu(page: Page, *, client: Optional[AsyncClient] = None, options: Optional[MenuOptions] = None) -> Optional[Dict[str, Any]]:
    try:
        menu = await fetch_document(page.location, MENU_PATH, client=client)
        apply_menu(page, menu, options)
    except Exception as e:
        log.error("Error loading menu: %s", e)
        return None
    return menu
