from pathlib import Path

import pytest

from crawl_config import (
    REGION_TAGS,
    RegionSpec,
    RunConfig,
    build_catalog,
    build_tag_safe,
    build_url_dirname,
)


@pytest.mark.parametrize("url,expected", [
    ("https://example.com/path/", "example.com-path"),
    ("http://example.com", "example.com"),
    ("http://example.com/", "example.com"),
    ("https://example.com/a/b", "example.com-a-b"),
])
def test_url_dirname(url, expected):
    assert build_url_dirname(url) == expected


def test_run_dir_under_data_root():
    assert RunConfig.from_url("https://example.com/path/").run_dir == Path("data") / "example.com-path"
    assert RunConfig.from_url("http://example.com").run_dir == Path("data/example.com")


def test_tag_safe_uses_first_selector_without_whitespace():
    assert build_tag_safe("header, #header, #hd, .header") == "header"
    assert build_tag_safe("main > article, .main") == "main>article"
    assert build_tag_safe("body") == "body"


def test_region_spec_splits_group():
    region = RegionSpec.from_tag("nav, #nav, .main_nav, .main--nav, .nav")
    assert region.key == "nav, #nav, .main_nav, .main--nav, .nav"
    assert region.selectors == ("nav", "#nav", ".main_nav", ".main--nav", ".nav")
    assert region.primary == "nav"
    assert region.safe_id == "nav"


def test_empty_group_rejected():
    with pytest.raises(ValueError):
        RegionSpec.from_tag(" , ")


def test_default_catalog_keeps_declared_order():
    catalog = build_catalog(REGION_TAGS)
    assert [r.safe_id for r in catalog] == ["body", "header", "nav", "section", "content", "footer", "main"]
    assert [r.key for r in catalog] == REGION_TAGS


def test_screenshot_path(tmp_path):
    config = RunConfig.from_url("http://example.com", data_root=tmp_path)
    header = config.catalog[1]
    assert config.screenshot_path(header) == tmp_path / "example.com" / "header.png"
    assert config.settle_ms == 1000
    assert config.chrome_allowance_px == 22
