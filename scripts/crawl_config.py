"""
Region catalog and run configuration for the style crawler.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple


REGION_TAGS = [
    "body",
    "header, #header, #hd, .header",
    "nav, #nav, .main_nav, .main--nav, .nav",
    "section",
    "content",
    "footer, #footer, .footer",
    "main, #main, [role=main], .main",
]

STYLE_PROPS = [
    "background-color",
    "background-image",
    "background-repeat",
    "box-shadow",
    "color",
    "font-family",
    "font-size",
    "font-weight",
    "line-height",
    "text-transform",
    "text-shadow",
]

DATA_ROOT = Path("data")
SETTLE_MS = 1000
# host chrome allowance added to the body height when sizing the viewport
CHROME_ALLOWANCE_PX = 22
PALETTE_SIZE = 5


@dataclass(frozen=True)
class RegionSpec:
    key: str
    selectors: Tuple[str, ...]
    safe_id: str

    @classmethod
    def from_tag(cls, tag: str) -> "RegionSpec":
        selectors = tuple(s.strip() for s in tag.split(",") if s.strip())
        if not selectors:
            raise ValueError(f"Empty selector group: {tag!r}")
        return cls(key=tag, selectors=selectors, safe_id=build_tag_safe(tag))

    @property
    def primary(self) -> str:
        return self.selectors[0]


@dataclass(frozen=True)
class BoundingRect:
    x: int
    y: int
    width: int
    height: int

    def as_clip(self, x: Optional[int] = None, y: Optional[int] = None) -> dict:
        return {
            "x": self.x if x is None else x,
            "y": self.y if y is None else y,
            "width": self.width,
            "height": self.height,
        }


@dataclass(frozen=True)
class RunConfig:
    """Immutable per-run parameters, built once at entry and passed everywhere."""

    url: str
    run_dir: Path
    catalog: Tuple[RegionSpec, ...]
    properties: Tuple[str, ...]
    settle_ms: int = SETTLE_MS
    chrome_allowance_px: int = CHROME_ALLOWANCE_PX
    palette_size: int = PALETTE_SIZE

    @classmethod
    def from_url(
        cls,
        url: str,
        data_root: Path = DATA_ROOT,
        tags: Sequence[str] = REGION_TAGS,
        props: Sequence[str] = STYLE_PROPS,
    ) -> "RunConfig":
        return cls(
            url=url,
            run_dir=Path(data_root) / build_url_dirname(url),
            catalog=build_catalog(tags),
            properties=tuple(props),
        )

    def screenshot_path(self, region: RegionSpec) -> Path:
        return self.run_dir / f"{region.safe_id}.png"


def build_tag_safe(tag: str) -> str:
    """Filesystem-safe id for a selector group: its first selector without whitespace."""
    return re.sub(r"\s+", "", tag.split(",")[0])


def build_url_dirname(url: str) -> str:
    name = re.sub(r"^https?://", "", url).replace("/", "-")
    if name.endswith("-"):
        name = name[:-1]
    return name


def build_catalog(tags: Sequence[str]) -> Tuple[RegionSpec, ...]:
    return tuple(RegionSpec.from_tag(tag) for tag in tags)


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
