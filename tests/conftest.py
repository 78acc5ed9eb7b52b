import asyncio
import json
from typing import Any, Dict, Tuple

import httpx
import pytest

PAGE_URL = "http://restaurant.test/index.html"

PAGE_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <title data-config-title>Default Title</title>
  <meta name="description" content="default description" data-config-content="seo.description">
</head>
<body>
  <img id="logo" src="./default-logo.png" alt="Logo" data-config-src="logo" data-config-alt="name">
  <h1 id="name" data-config="name">Default Name</h1>
  <p id="hours" data-config="hours.display">Default hours</p>
  <p id="missing" data-config="does.not.exist">Fallback text</p>
  <a id="phone" href="tel:000" data-config-tel="contact.phone">call</a>
  <a id="email" href="mailto:default@example.com" data-config-mailto="contact.email">mail</a>
  <a id="insta" href="#" data-config-href="social.instagram">insta</a>
  <div id="menu-container"></div>
  <ul id="menu-preview"></ul>
</body>
</html>
"""

BUSINESS = {
    "name": "Casa Lumière",
    "tagline": "Seasonal Kitchen",
    "logo": "./assets/logo.svg",
    "contact": {"phone": "+1 555 0100", "email": "hello@casa.example"},
    "hours": {"display": "Mon-Fri<br>Sat"},
    "social": {"instagram": "https://instagram.com/casa"},
    "seo": {"description": "Seasonal plates"},
}


def make_menu() -> Dict[str, Any]:
    return {
        "data": {
            "menu_categories": [
                {
                    "category_name": "Starters",
                    "items": [
                        {"name": "Soup", "price": 6, "popular": True},
                        {"name": "Salad", "price": 8.5, "dietary": ["vegan"]},
                        {"name": "Bread", "price": 3},
                    ],
                },
                {
                    "category_name": "Mains",
                    "items": [
                        {"name": "Steak", "price": 30, "badges": ["Chef's Pick"]},
                        {"name": "Risotto", "price": 21, "dietary": ["gluten free", "vegetarian"]},
                        {"name": "Fish", "price": 24},
                    ],
                },
            ]
        }
    }


# (status, body); a 3xx body is the redirect target
Route = Tuple[int, Any]


def _handler(routes: Dict[str, Route]):
    def handle(request: httpx.Request) -> httpx.Response:
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, text="not found")
        status, body = route
        if 300 <= status < 400:
            return httpx.Response(status, headers={"location": body})
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, content=json.dumps(body).encode("utf-8"),
                              headers={"content-type": "application/json"})
    return handle


@pytest.fixture
def page_html() -> str:
    return PAGE_HTML


@pytest.fixture
def business() -> Dict[str, Any]:
    return json.loads(json.dumps(BUSINESS))


@pytest.fixture
def menu_doc() -> Dict[str, Any]:
    return make_menu()


@pytest.fixture
def serve():
    """Run ``make_coro(client)`` against a mock HTTP site built from ``routes``."""
    def run(routes: Dict[str, Route], make_coro):
        async def go():
            async with httpx.AsyncClient(transport=httpx.MockTransport(_handler(routes))) as client:
                return await make_coro(client)
        return asyncio.run(go())
    return run


@pytest.fixture
def site_dir(tmp_path, page_html, business, menu_doc):
    (tmp_path / "config").mkdir()
    (tmp_path / "index.html").write_text(page_html, encoding="utf-8")
    (tmp_path / "config" / "business.json").write_text(json.dumps(business), encoding="utf-8")
    (tmp_path / "config" / "menu.json").write_text(json.dumps(menu_doc), encoding="utf-8")
    return tmp_path
