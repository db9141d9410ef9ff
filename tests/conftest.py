import asyncio
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from crawl_config import RunConfig, ensure_dir


FAKE_PNG = b"\x89PNG\r\n\x1a\nfake"


class FakeElement:
    def __init__(self, name: str, visible: bool = True, layout: Optional[dict] = None, style: Optional[dict] = None):
        self.name = name
        self.visible = visible
        self.layout = layout or {
            "left": 0, "top": 0, "width": 100, "height": 40,
            "paddingLeft": "0px", "paddingRight": "0px",
            "paddingTop": "0px", "paddingBottom": "0px",
        }
        self.style = style or {}


class FakeSession:
    """Stands in for BrowserSession and records every call in order."""

    def __init__(self, elements: Dict[str, List[FakeElement]], body=(1280.0, 2000.0), png: bytes = FAKE_PNG):
        self.elements = elements
        self.body = body
        self.png = png
        self.calls: List[tuple] = []
        self.closed = False
        self.fail_on: Optional[str] = None

    def _record(self, *call):
        self.calls.append(call)
        if self.fail_on == call[0]:
            raise RuntimeError(f"{call[0]} exploded")

    async def goto(self, url):
        self._record("goto", url)

    async def body_size(self):
        self._record("body_size")
        return {"width": self.body[0], "height": self.body[1]}

    async def set_viewport(self, width, height):
        self._record("viewport", width, height)

    async def wait(self, ms):
        self._record("wait", ms)

    async def inject_script(self, source):
        self._record("inject")

    async def query_all(self, selector):
        self._record("query", selector)
        await asyncio.sleep(0)
        return list(self.elements.get(selector, []))

    async def is_visible(self, handle):
        await asyncio.sleep(0)
        return handle.visible

    async def measure(self, handle):
        self._record("measure", handle.name)
        return handle.layout

    async def scroll_to(self, y, x):
        self._record("scroll", y, x)
        await asyncio.sleep(0)
        return {"x": 0, "y": 0}

    async def screenshot(self, path, clip):
        self._record("screenshot", Path(path).name, clip)
        await asyncio.sleep(0)
        Path(path).write_bytes(self.png)

    async def evaluate(self, expression, arg=None):
        self._record("evaluate")
        style = {}
        for tag, primary in zip(arg["tags"], arg["primary"]):
            matches = self.elements.get(primary)
            if matches:
                style[tag] = {p: matches[0].style.get(p, "") for p in arg["props"]}
        return style

    async def close(self):
        self.calls.append(("close",))
        self.closed = True


@pytest.fixture
def make_config(tmp_path):
    def _make(tags, url="https://example.com/path/"):
        config = RunConfig.from_url(url, data_root=tmp_path / "data", tags=tags, props=["background-color", "background-image", "color"])
        ensure_dir(config.run_dir)
        return config
    return _make
