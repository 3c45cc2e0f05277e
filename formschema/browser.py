"""Playwright-backed browser session and document host."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from playwright.async_api import (
    Browser,
    BrowserContext,
    JSHandle,
    Page,
    Playwright,
    async_playwright,
)

from .dom import (
    DocumentHost,
    InvalidSelectorError,
    MutationCallback,
    MutationRecord,
    PageSnapshot,
    VisibilityCallback,
)

LOGGER = logging.getLogger(__name__)

MUTATION_BINDING = "__formschemaMutations"
VISIBILITY_BINDING = "__formschemaVisibility"

CAPTURE_SCRIPT = """
() => {
  const nodes = Array.from(document.querySelectorAll('*'));
  const index = new Map();
  nodes.forEach((node, position) => index.set(node, position));
  const skipped = new Set(['SCRIPT', 'STYLE', 'NOSCRIPT', 'TEMPLATE']);
  const walk = (el) => {
    const rect = el.getBoundingClientRect();
    const style = window.getComputedStyle(el);
    const attrs = {};
    for (const attr of Array.from(el.attributes || [])) {
      attrs[attr.name] = attr.value;
    }
    const children = [];
    for (const child of Array.from(el.childNodes)) {
      if (child.nodeType === Node.TEXT_NODE) {
        if (child.textContent) children.push({ t: 3, text: child.textContent });
      } else if (child.nodeType === Node.ELEMENT_NODE && !skipped.has(child.tagName)) {
        children.push(walk(child));
      }
    }
    return {
      t: 1,
      key: index.has(el) ? index.get(el) : -1,
      tag: el.tagName.toLowerCase(),
      attrs,
      rect: [rect.x, rect.y, rect.width, rect.height],
      style: [style.display, style.visibility, style.opacity],
      children,
    };
  };
  return {
    nodes,
    payload: {
      url: window.location.href,
      viewport: { width: window.innerWidth, height: window.innerHeight },
      root: walk(document.documentElement),
    },
  };
}
"""

QUERY_SCRIPT = """
(nodes, selector) => {
  let found;
  try {
    found = document.querySelectorAll(selector);
  } catch (error) {
    return { error: String((error && error.message) || error) };
  }
  return { keys: Array.from(found, (el) => nodes.indexOf(el)) };
}
"""

ATTACHED_SCRIPT = """
(nodes, key) => {
  const el = key >= 0 ? nodes[key] : null;
  return Boolean(el && el.isConnected);
}
"""

OBSERVE_SCRIPT = """
(binding) => {
  if (window.__formschemaObserver) return true;
  const summarize = (node) => ({
    nodeType: node.nodeType,
    tag: node.nodeType === Node.ELEMENT_NODE ? node.tagName.toLowerCase() : '',
    containsControl: node.nodeType === Node.ELEMENT_NODE
      && node.querySelector('input, select, textarea') !== null,
  });
  const observer = new MutationObserver((mutations) => {
    const records = mutations.map((mutation) => ({
      type: mutation.type,
      addedNodes: Array.from(mutation.addedNodes, summarize),
      removedNodes: Array.from(mutation.removedNodes, summarize),
    }));
    window[binding](records);
  });
  observer.observe(document.body || document.documentElement, {
    childList: true,
    subtree: true,
    attributes: false,
    characterData: false,
  });
  window.__formschemaObserver = observer;
  return true;
}
"""

DISCONNECT_SCRIPT = """
() => {
  if (window.__formschemaObserver) {
    window.__formschemaObserver.disconnect();
    delete window.__formschemaObserver;
  }
}
"""

VISIBILITY_SCRIPT = """
(binding) => {
  if (window.__formschemaVisibilityInstalled) return;
  window.__formschemaVisibilityInstalled = true;
  document.addEventListener('visibilitychange', () => window[binding](document.hidden));
}
"""


@dataclass(slots=True)
class BrowserConfig:
    headless: bool = True
    slow_mo: float = 0
    navigation_timeout_ms: int = 45000
    viewport_width: int = 1280
    viewport_height: int = 720


class BrowserSession:
    """Async context manager that owns a Playwright browser/page pair."""

    def __init__(self, config: Optional[BrowserConfig] = None) -> None:
        self.config = config or BrowserConfig()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    async def __aenter__(self) -> "BrowserSession":
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.config.headless, slow_mo=self.config.slow_mo
        )
        self._context = await self._browser.new_context(
            viewport={
                "width": self.config.viewport_width,
                "height": self.config.viewport_height,
            }
        )
        self._page = await self._context.new_page()
        self._page.set_default_timeout(self.config.navigation_timeout_ms)
        self._page.set_default_navigation_timeout(self.config.navigation_timeout_ms)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def page(self) -> Page:
        if not self._page:
            raise RuntimeError("BrowserSession is not started")
        return self._page

    async def screenshot(self, path: Path, *, full_page: bool = True) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        await self.page.screenshot(path=str(path), full_page=full_page)
        return path

    async def save_html(self, path: Path) -> Path:
        html = await self.page.content()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(html, encoding="utf-8")
        return path

    async def close(self) -> None:
        if self._context:
            await self._context.close()
            self._context = None
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
        self._page = None


class PlaywrightHost(DocumentHost):
    """Document host for a live Playwright page.

    Snapshot keys are positions in the page's ``querySelectorAll('*')`` list
    at capture time. The list is held as a JS handle so later selector
    queries and attachment checks resolve back to those keys.
    """

    supports_mutation_observer = True

    def __init__(self, page: Page, *, logger: Optional[logging.Logger] = None) -> None:
        self.page = page
        self.logger = logger or LOGGER
        self._nodes: Optional[JSHandle] = None
        self._mutation_callback: Optional[MutationCallback] = None
        self._visibility_callback: Optional[VisibilityCallback] = None
        self._observing = False
        self._tasks: Set[asyncio.Task] = set()

    @classmethod
    async def attach(
        cls, page: Page, *, logger: Optional[logging.Logger] = None
    ) -> "PlaywrightHost":
        host = cls(page, logger=logger)
        await page.expose_function(MUTATION_BINDING, host._on_mutations)
        await page.expose_function(VISIBILITY_BINDING, host._on_visibility)
        page.on("domcontentloaded", host._on_navigated)
        return host

    async def capture(self) -> PageSnapshot:
        result = await self.page.evaluate_handle(CAPTURE_SCRIPT)
        try:
            payload = await result.evaluate("(captured) => captured.payload")
            nodes = await result.get_property("nodes")
        finally:
            await result.dispose()
        previous, self._nodes = self._nodes, nodes
        if previous is not None:
            await previous.dispose()
        return PageSnapshot.from_payload(payload)

    async def query_selector_all(self, selector: str) -> List[int]:
        if self._nodes is None:
            return []
        result: Dict[str, Any] = await self._nodes.evaluate(QUERY_SCRIPT, selector)
        if "error" in result:
            raise InvalidSelectorError(result["error"])
        return [int(key) for key in result.get("keys", [])]

    async def is_attached(self, key: int) -> bool:
        if self._nodes is None:
            return False
        return bool(await self._nodes.evaluate(ATTACHED_SCRIPT, key))

    def observe_mutations(self, callback: MutationCallback) -> bool:
        self._mutation_callback = callback
        self._observing = True
        self._schedule(self.page.evaluate(OBSERVE_SCRIPT, MUTATION_BINDING))
        return True

    def disconnect(self) -> None:
        self._observing = False
        self._schedule(self.page.evaluate(DISCONNECT_SCRIPT))

    def observe_visibility(self, callback: VisibilityCallback) -> bool:
        self._visibility_callback = callback
        self._schedule(self.page.evaluate(VISIBILITY_SCRIPT, VISIBILITY_BINDING))
        return True

    async def drain(self) -> None:
        """Wait for in-page install/disconnect calls to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _schedule(self, coroutine) -> None:
        task = asyncio.ensure_future(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._finish_task)

    def _finish_task(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.debug("In-page call failed: %s", task.exception())

    def _on_mutations(self, records: List[Dict[str, Any]]) -> None:
        if not self._observing or self._mutation_callback is None:
            return
        self._mutation_callback([MutationRecord.from_payload(item) for item in records])

    def _on_visibility(self, hidden: bool) -> None:
        if self._visibility_callback is not None:
            self._visibility_callback(bool(hidden))

    def _on_navigated(self, _page: Page) -> None:
        if self._observing:
            self._schedule(self.page.evaluate(OBSERVE_SCRIPT, MUTATION_BINDING))
        if self._visibility_callback is not None:
            self._schedule(self.page.evaluate(VISIBILITY_SCRIPT, VISIBILITY_BINDING))


__all__ = ["BrowserConfig", "BrowserSession", "PlaywrightHost"]
