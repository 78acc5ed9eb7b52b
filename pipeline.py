import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from httpx import AsyncClient

from config_binder import apply_config, install_visibility_rule, load_config
from menu_renderer import FULL_CONTAINER_ID, PREVIEW_CONTAINER_ID, MenuOptions, apply_menu, load_menu
from page import Page

log = logging.getLogger("uvicorn.error")


async def render_page(
    page: Page,
    *,
    client: Optional[AsyncClient] = None,
    config: Optional[Dict[str, Any]] = None,
    menu: Optional[Dict[str, Any]] = None,
    menu_options: Optional[MenuOptions] = None,
) -> Dict[str, Any]:
    """Run both page components once, as a browser would on document-ready.

    Documents passed in are bound directly; the others are fetched relative
    to ``page.location``. The visibility rule goes in before any fetch.
    Returns a small summary of what happened.
    """
    install_visibility_rule(page)

    async def _config() -> Optional[Dict[str, Any]]:
        if config is not None:
            apply_config(page, config)
            return config
        return await load_config(page, client=client)

    async def _menu() -> Optional[Dict[str, Any]]:
        if menu is not None:
            apply_menu(page, menu, menu_options)
            return menu
        return await load_menu(page, client=client, options=menu_options)

    config_doc, menu_doc = await asyncio.gather(_config(), _menu())
    return {
        "config_loaded": config_doc is not None,
        "menu_loaded": menu_doc is not None,
        "menu_sections": len(page.select(f"#{FULL_CONTAINER_ID} > section")),
        "preview_items": len(page.select(f"#{PREVIEW_CONTAINER_ID} > li")),
    }


async def open_page(path: Union[str, Path], *, client: Optional[AsyncClient] = None, menu_options: Optional[MenuOptions] = None) -> Page:
    page = Page.from_file(path)
    meta = await render_page(page, client=client, menu_options=menu_options)
    log.info("opened %s: %s", path, meta)
    return page
