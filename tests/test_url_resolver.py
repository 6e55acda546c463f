from pathlib import Path

import pytest

from runevision.url_resolver import (
    UrlType,
    get_package_file_name,
    get_resolved_path,
    parse_url,
    resolve_url,
)


def test_resolve_url_uses_ros_home(monkeypatch):
    monkeypatch.setenv("ROS_HOME", "/opt/roshome")
    assert resolve_url("${ROS_HOME}/model.onnx") == "/opt/roshome/model.onnx"


def test_resolve_url_falls_back_to_home(monkeypatch):
    monkeypatch.delenv("ROS_HOME", raising=False)
    monkeypatch.setenv("HOME", "/home/someone")
    assert resolve_url("${ROS_HOME}/x") == "/home/someone/.ros/x"


def test_resolve_url_without_any_home(monkeypatch):
    monkeypatch.setenv("ROS_HOME", "")
    monkeypatch.setenv("HOME", "")
    assert resolve_url("${ROS_HOME}/x") == "/x"


@pytest.mark.parametrize("url", ["cost$5", "${OTHER}/a", "$", "a$b${", "plain"])
def test_resolve_url_keeps_other_dollars(url):
    assert resolve_url(url) == url


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("", UrlType.EMPTY),
        ("file:///tmp/a", UrlType.FILE),
        ("FILE:///tmp/a", UrlType.FILE),
        ("package://pkg/model.onnx", UrlType.PACKAGE),
        ("PACKAGE://pkg/x", UrlType.PACKAGE),
        ("package:///model.onnx", UrlType.INVALID),
        ("package://pkg/", UrlType.INVALID),
        ("package://pkg", UrlType.INVALID),
        ("http://host/x", UrlType.INVALID),
        ("file://relative", UrlType.INVALID),
    ],
)
def test_parse_url(url, expected):
    assert parse_url(url) is expected


def test_file_url_resolves_to_absolute_path():
    assert get_resolved_path("file:///tmp/model.onnx") == Path("/tmp/model.onnx")


def test_file_url_with_ros_home(monkeypatch):
    monkeypatch.setenv("ROS_HOME", "/data")
    assert get_resolved_path("file://${ROS_HOME}/m.onnx") is None
    assert get_resolved_path("file:///${ROS_HOME}/m.onnx") == Path("//data/m.onnx")


def test_package_url_uses_lookup():
    seen = []

    def lookup(name):
        seen.append(name)
        return "/share/" + name

    path = get_resolved_path("package://rune_detector/model/a.onnx", lookup)
    assert path == Path("/share/rune_detector/model/a.onnx")
    assert seen == ["rune_detector"]


def test_package_not_found_gives_empty_and_none():
    assert get_package_file_name("package://missing/a", lambda name: "") == ""
    assert get_resolved_path("package://missing/a", lambda name: "") is None


@pytest.mark.parametrize("url", ["", "http://x/y", "package://pkg"])
def test_unresolvable_urls_give_none(url):
    assert get_resolved_path(url, lambda name: "/share") is None


def test_default_lookup_reads_ament_index(tmp_path, monkeypatch):
    marker_dir = tmp_path / "share" / "ament_index" / "resource_index" / "packages"
    marker_dir.mkdir(parents=True)
    (marker_dir / "mypkg").write_text("")
    monkeypatch.setenv("AMENT_PREFIX_PATH", str(tmp_path))
    path = get_resolved_path("package://mypkg/docs/test.png")
    assert path == tmp_path / "share" / "mypkg" / "docs" / "test.png"
    assert get_resolved_path("package://otherpkg/a") is None