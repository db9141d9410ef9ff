"""
Browser session wrapper and region resolution for the style crawler.

All page access goes through BrowserSession so the capture loop can own a
single session exclusively, and so tests can substitute a recording fake.
"""

import math
import re
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

try:
    from playwright.async_api import async_playwright, Browser, BrowserContext, ElementHandle, Page
except ImportError:
    print("ERROR: playwright not installed. Run: pip install playwright && playwright install chromium")
    raise SystemExit(1)

from crawl_config import BoundingRect, RegionSpec


USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
NAVIGATION_TIMEOUT_MS = 60000

VisibilityCheck = Callable[[Any], Awaitable[bool]]

# Installs window.__crawlIsVisible. Rejects detached and zero-size elements,
# display:none or transparent ancestors, and boxes fully clipped by an
# overflow-clipping ancestor.
VISIBILITY_SCRIPT = """() => {
    window.__crawlIsVisible = function (el) {
        if (!el || !el.isConnected) {
            return false;
        }
        const rect = el.getBoundingClientRect();
        if (rect.width <= 0 || rect.height <= 0) {
            return false;
        }
        const own = window.getComputedStyle(el);
        if (own.visibility === 'hidden' || own.visibility === 'collapse') {
            return false;
        }
        const root = document.documentElement;
        for (let node = el; node && node.nodeType === 1; node = node.parentElement) {
            const style = window.getComputedStyle(node);
            if (style.display === 'none') {
                return false;
            }
            if (parseFloat(style.opacity || '1') <= 0) {
                return false;
            }
            if (node === el || node === root || node === document.body) {
                continue;
            }
            const overflow = style.overflow + ' ' + style.overflowX + ' ' + style.overflowY;
            if (/(hidden|clip|scroll|auto)/.test(overflow)) {
                const box = node.getBoundingClientRect();
                if (rect.right <= box.left || rect.left >= box.right ||
                    rect.bottom <= box.top || rect.top >= box.bottom) {
                    return false;
                }
            }
        }
        return true;
    };
}"""

MEASURE_SCRIPT = """(el) => {
    const rect = el.getBoundingClientRect();
    const style = window.getComputedStyle(el);
    return {
        left: rect.left,
        top: rect.top,
        width: rect.width,
        height: rect.height,
        paddingLeft: style.getPropertyValue('padding-left'),
        paddingRight: style.getPropertyValue('padding-right'),
        paddingTop: style.getPropertyValue('padding-top'),
        paddingBottom: style.getPropertyValue('padding-bottom'),
    };
}"""

BODY_RECT_SCRIPT = """() => {
    const rect = document.body.getBoundingClientRect();
    return { width: rect.width, height: rect.height };
}"""

SCROLL_SCRIPT = """([y, x]) => {
    const startX = window.scrollX;
    const startY = window.scrollY;
    window.scrollTo(startX + x, startY + y);
    return {
        x: x - (window.scrollX - startX),
        y: y - (window.scrollY - startY),
    };
}"""


class BrowserSession:
    """One Playwright context + page, owned by exactly one pipeline."""

    def __init__(self, context: BrowserContext, page: Page):
        self.context = context
        self.page = page

    @classmethod
    async def open(cls, browser: Browser) -> "BrowserSession":
        context = await browser.new_context(
            device_scale_factor=1,
            user_agent=USER_AGENT,
        )
        page = await context.new_page()
        return cls(context, page)

    async def goto(self, url: str) -> None:
        await self.page.goto(url, wait_until="load", timeout=NAVIGATION_TIMEOUT_MS)

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        return await self.page.evaluate(expression, arg)

    async def body_size(self) -> Dict[str, float]:
        return await self.page.evaluate(BODY_RECT_SCRIPT)

    async def set_viewport(self, width: int, height: int) -> None:
        await self.page.set_viewport_size({"width": width, "height": height})

    async def wait(self, ms: int) -> None:
        await self.page.wait_for_timeout(ms)

    async def inject_script(self, source: str) -> None:
        await self.page.evaluate(source)

    async def query_all(self, selector: str) -> List[ElementHandle]:
        return await self.page.query_selector_all(selector)

    async def is_visible(self, handle: ElementHandle) -> bool:
        # the helper may hand back a Promise; evaluate awaits it
        return bool(await handle.evaluate("el => window.__crawlIsVisible(el)"))

    async def measure(self, handle: ElementHandle) -> Dict[str, Any]:
        return await handle.evaluate(MEASURE_SCRIPT)

    async def scroll_to(self, y: int, x: int) -> Dict[str, float]:
        """Scroll so the viewport point (x, y) lands on the origin.

        Returns where that point sits once scrolling stops, which is not the
        origin when the page cannot scroll that far.
        """
        return await self.page.evaluate(SCROLL_SCRIPT, [y, x])

    async def screenshot(self, path: Path, clip: Dict[str, float]) -> None:
        await self.page.screenshot(path=str(path), clip=clip)

    async def close(self) -> None:
        await self.context.close()


def parse_padding(value: Any) -> int:
    """Leading integer of a CSS length, like JavaScript's parseInt; 0 otherwise."""
    if isinstance(value, (int, float)):
        return int(value)
    match = re.match(r"\s*([+-]?\d+)", value or "")
    return int(match.group(1)) if match else 0


def padded_rect(layout: Dict[str, Any]) -> BoundingRect:
    width = layout["width"] + parse_padding(layout.get("paddingLeft")) + parse_padding(layout.get("paddingRight"))
    height = layout["height"] + parse_padding(layout.get("paddingTop")) + parse_padding(layout.get("paddingBottom"))
    return BoundingRect(
        x=math.floor(layout["left"]),
        y=math.floor(layout["top"]),
        width=math.floor(width),
        height=math.floor(height),
    )


async def resolve_region(
    session: BrowserSession,
    region: RegionSpec,
    is_visible: Optional[VisibilityCheck] = None,
) -> Optional[Any]:
    """First visible element of the group, in selector order then DOM order."""
    check = is_visible or session.is_visible
    for selector in region.selectors:
        for handle in await session.query_all(selector):
            if await check(handle):
                return handle
    return None


async def measure_region(
    session: BrowserSession,
    region: RegionSpec,
    is_visible: Optional[VisibilityCheck] = None,
) -> Optional[BoundingRect]:
    handle = await resolve_region(session, region, is_visible)
    if handle is None:
        return None
    return padded_rect(await session.measure(handle))
