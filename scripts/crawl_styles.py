#!/usr/bin/env python3
"""
Style crawler - Collection Script
Captures per-region screenshots, dominant colors and computed styles of a
single page using Playwright.
"""

import argparse
import asyncio
import json
import re
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from PIL import Image

from crawl_browser import (
    VISIBILITY_SCRIPT,
    BrowserSession,
    VisibilityCheck,
    async_playwright,
    measure_region,
)
from crawl_config import BoundingRect, RegionSpec, RunConfig, ensure_dir


RGB = Tuple[int, int, int]
Extractor = Callable[[Path, int], List[RGB]]
SessionFactory = Callable[[], Awaitable[BrowserSession]]

STYLE_SCRIPT = """(config) => {
    const style = {};
    config.tags.forEach((tag, idx) => {
        const el = document.querySelector(config.primary[idx]);
        if (!el) {
            return;
        }
        const computed = window.getComputedStyle(el);
        const entry = {};
        config.props.forEach(p => { entry[p] = computed.getPropertyValue(p); });
        style[tag] = entry;
    });
    return style;
}"""


class CrawlError(RuntimeError):
    """A browser step failed; the pipeline that ran it is aborted."""

    def __init__(self, pipeline: str, stage: str, cause: BaseException):
        super().__init__(f"{pipeline} failed at {stage}: {cause}")
        self.pipeline = pipeline
        self.stage = stage


@dataclass
class ColorResult:
    region: str
    colors: List[RGB]


def write_json(path: Path, data: Any) -> None:
    # serialize first so a bad value never leaves a truncated file behind
    content = json.dumps(data, ensure_ascii=False, indent=2)
    path.write_text(content, encoding="utf-8")


def write_artifact(path: Path, data: Any, message: str) -> bool:
    try:
        write_json(path, data)
    except (OSError, TypeError, ValueError) as exc:
        print(f"❌ Failed to write {path}: {exc}")
        return False
    print(f"✅ {message}")
    return True


def parse_color(value: str) -> Optional[Tuple[int, int, int, float]]:
    if not value:
        return None
    value = value.strip().lower()
    if value == "transparent":
        return 0, 0, 0, 0.0
    rgba_match = re.match(r"rgba?\(([^)]+)\)", value)
    if rgba_match:
        parts = [p.strip() for p in re.split(r"[,\s/]+", rgba_match.group(1)) if p.strip()]
        if len(parts) >= 3:
            try:
                r = int(float(parts[0]))
                g = int(float(parts[1]))
                b = int(float(parts[2]))
                a = float(parts[3]) if len(parts) > 3 else 1.0
                return r, g, b, a
            except ValueError:
                return None
    hex_match = re.match(r"#([0-9a-f]{3,8})$", value)
    if hex_match:
        h = hex_match.group(1)
        if len(h) in {3, 4}:
            a = int(h[3] * 2, 16) / 255.0 if len(h) == 4 else 1.0
            return int(h[0] * 2, 16), int(h[1] * 2, 16), int(h[2] * 2, 16), a
        if len(h) in {6, 8}:
            a = int(h[6:8], 16) / 255.0 if len(h) == 8 else 1.0
            return int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16), a
    return None


def is_transparent(value: str) -> bool:
    rgba = parse_color(value)
    return rgba is not None and rgba[3] <= 0


def flag_bgimage_candidates(style: Dict[str, Dict[str, str]]) -> List[str]:
    """Regions painted by a background image over a transparent background color.

    Diagnostic only: the record is left untouched.
    """
    flagged = []
    for tag, tag_style in style.items():
        bg_image = (tag_style.get("background-image") or "none").strip()
        if is_transparent(tag_style.get("background-color", "")) and bg_image != "none":
            print(f"⚠️  {tag} - bgimage candidate")
            flagged.append(tag)
    return flagged


class ScreenshotSequencer:
    """Captures one screenshot per region, strictly one after another.

    Every capture scrolls the shared viewport, so the session is owned by the
    sequencer for its whole run and closed when the run ends.
    """

    def __init__(
        self,
        session: BrowserSession,
        config: RunConfig,
        is_visible: Optional[VisibilityCheck] = None,
    ):
        self.session = session
        self.config = config
        self.is_visible = is_visible
        self.stage = "init"
        self.captured: List[Path] = []

    async def run(self) -> List[Path]:
        try:
            await self.prepare()
            for region in self.config.catalog:
                self.stage = f"resolving:{region.safe_id}"
                rect = await measure_region(self.session, region, self.is_visible)
                if rect is None:
                    print(f"⚠️  {region.key}: no visible element, skipped")
                    self.config.screenshot_path(region).unlink(missing_ok=True)
                    continue
                self.stage = f"capturing:{region.safe_id}"
                self.captured.append(await self.capture(region, rect))
            self.stage = "done"
        except Exception as exc:
            raise CrawlError("screenshots", self.stage, exc) from exc
        finally:
            await self.session.close()
        return self.captured

    async def prepare(self) -> None:
        self.stage = "goto"
        await self.session.goto(self.config.url)
        self.stage = "viewport"
        body = await self.session.body_size()
        await self.session.set_viewport(
            int(body["width"]),
            int(body["height"]) + self.config.chrome_allowance_px,
        )
        self.stage = "settle"
        await self.session.wait(self.config.settle_ms)
        self.stage = "inject"
        await self.session.inject_script(VISIBILITY_SCRIPT)

    async def capture(self, region: RegionSpec, rect: BoundingRect) -> Path:
        print(f"📸 {region.key} {rect}")
        offset = await self.session.scroll_to(rect.y, rect.x)
        path = self.config.screenshot_path(region)
        await self.session.screenshot(path, rect.as_clip(x=offset["x"], y=offset["y"]))
        return path


def pillow_palette(path: Path, color_count: int) -> List[RGB]:
    """Median-cut palette over every pixel, most frequent swatch first."""
    with Image.open(path) as img:
        quantized = img.convert("RGB").quantize(colors=color_count)
    palette = quantized.getpalette()
    ranked = sorted(quantized.getcolors(), key=lambda entry: entry[0], reverse=True)
    return [tuple(palette[idx * 3:idx * 3 + 3]) for _, idx in ranked]


async def region_colors(
    region: RegionSpec,
    path: Path,
    extractor: Extractor,
    palette_size: int,
) -> Optional[ColorResult]:
    try:
        size = path.stat().st_size
    except FileNotFoundError:
        return None

    if size == 0:
        print(f"⚠️  {path} removed due to 0 size")
        path.unlink(missing_ok=True)
        return None

    loop = asyncio.get_running_loop()
    try:
        colors = await loop.run_in_executor(None, extractor, path, palette_size)
    except Exception as exc:
        print(f"❌ Color extraction failed for {path}: {exc}")
        return None
    if not colors:
        return None
    return ColorResult(
        region=region.safe_id,
        colors=[tuple(int(c) for c in color[:3]) for color in colors],
    )


async def extract_colors(config: RunConfig, extractor: Extractor = pillow_palette) -> List[ColorResult]:
    # gather keeps input order, so survivors stay in catalog order
    results = await asyncio.gather(*(
        region_colors(region, config.screenshot_path(region), extractor, config.palette_size)
        for region in config.catalog
    ))
    return [r for r in results if r]


def colors_record(results: List[ColorResult]) -> Dict[str, List[List[int]]]:
    return {r.region: [list(color) for color in r.colors] for r in results}


async def sample_styles(session: BrowserSession, config: RunConfig) -> Dict[str, Dict[str, str]]:
    stage = "goto"
    try:
        await session.goto(config.url)
        stage = "evaluate"
        style = await session.evaluate(STYLE_SCRIPT, {
            "tags": [region.key for region in config.catalog],
            "primary": [region.primary for region in config.catalog],
            "props": list(config.properties),
        })
    except Exception as exc:
        raise CrawlError("styles", stage, exc) from exc
    finally:
        await session.close()

    flag_bgimage_candidates(style)
    return style


async def style_pipeline(open_session: SessionFactory, config: RunConfig) -> Dict[str, Dict[str, str]]:
    css_path = config.run_dir / "css.json"
    css_path.unlink(missing_ok=True)
    session = await open_session()
    style = await sample_styles(session, config)
    write_artifact(css_path, style, "css retrieved")
    return style


async def screenshot_pipeline(
    open_session: SessionFactory,
    config: RunConfig,
    extractor: Extractor = pillow_palette,
) -> List[ColorResult]:
    colors_path = config.run_dir / "colors.json"
    colors_path.unlink(missing_ok=True)
    session = await open_session()
    await ScreenshotSequencer(session, config).run()

    print("🎨 Analyzing screenshots...")
    results = await extract_colors(config, extractor)
    write_artifact(colors_path, colors_record(results), "screenshot colors retrieved")
    return results


async def crawl(
    config: RunConfig,
    open_session: SessionFactory,
    extractor: Extractor = pillow_palette,
) -> Tuple[Dict[str, Dict[str, str]], List[ColorResult]]:
    """Runs the style and screenshot pipelines side by side.

    A failure in one pipeline does not cancel the other; once both have
    settled, the first failure is raised.
    """
    ensure_dir(config.run_dir)
    outcomes = await asyncio.gather(
        style_pipeline(open_session, config),
        screenshot_pipeline(open_session, config, extractor),
        return_exceptions=True,
    )
    failures = [o for o in outcomes if isinstance(o, BaseException)]
    for failure in failures:
        print(f"❌ {failure}")
    if failures:
        raise failures[0]
    return outcomes[0], outcomes[1]


async def main_async(args: argparse.Namespace) -> None:
    config = RunConfig.from_url(args.url)
    print("🚀 Started. This can take a while...")

    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=True)
        try:
            await crawl(config, partial(BrowserSession.open, browser))
        finally:
            await browser.close()

    print("\n✅ Crawl complete")
    print(f"Artifacts: {config.run_dir}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Capture region screenshots, colors and computed styles of a web page")
    parser.add_argument("url", help="Target page URL, scheme included")

    args = parser.parse_args()
    asyncio.run(main_async(args))


if __name__ == "__main__":
    main()
