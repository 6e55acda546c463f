"""Resolve model and resource URLs of the ``file://`` and ``package://`` forms."""

from __future__ import annotations

import os
import re
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

PackageLookup = Callable[[str], str]

_FILE_PREFIX = "file:///"
_PACKAGE_PREFIX = "package://"
_ROS_HOME_VARIABLE = re.compile(r"\$\{ROS_HOME\}")


class UrlType(Enum):
    """Kind of URL recognised by :func:`parse_url`."""

    EMPTY = 0
    FILE = 1
    PACKAGE = 2
    INVALID = 3


def _ros_home() -> str:
    ros_home = os.environ.get("ROS_HOME", "")
    if ros_home:
        return ros_home
    home = os.environ.get("HOME", "")
    if home:
        return home + "/.ros"
    return ""


def resolve_url(url: str) -> str:
    """Substitute ``${ROS_HOME}``; any other ``$`` is kept as it stands."""
    return _ROS_HOME_VARIABLE.sub(lambda _match: _ros_home(), url)


def parse_url(url: str) -> UrlType:
    """Classify ``url``; prefixes are matched without regard to case."""
    if url == "":
        return UrlType.EMPTY
    lowered = url.lower()
    if lowered.startswith(_FILE_PREFIX):
        return UrlType.FILE
    if lowered.startswith(_PACKAGE_PREFIX):
        start = len(_PACKAGE_PREFIX)
        rest = url.find("/", start)
        # The package name must be non-empty and something must follow the slash.
        if start < rest < len(url) - 1:
            return UrlType.PACKAGE
    return UrlType.INVALID


def _ament_share_directory(package: str) -> str:
    """Look a package up in the ament resource index; empty string when absent."""
    for prefix in os.environ.get("AMENT_PREFIX_PATH", "").split(os.pathsep):
        if not prefix:
            continue
        marker = Path(prefix, "share", "ament_index", "resource_index", "packages", package)
        if marker.exists():
            return str(Path(prefix, "share", package))
    return ""


def get_package_file_name(url: str, package_lookup: Optional[PackageLookup] = None) -> str:
    """Map ``package://name/rest`` to ``<share dir of name>/rest``.

    Returns an empty string when the package cannot be found.
    """
    lookup = package_lookup or _ament_share_directory
    start = len(_PACKAGE_PREFIX)
    rest = url.find("/", start)
    package = url[start:rest]
    pkg_path = lookup(package)
    if not pkg_path:
        return ""
    return pkg_path + url[rest:]


def get_resolved_path(
    url: str, package_lookup: Optional[PackageLookup] = None
) -> Optional[Path]:
    """Resolve ``url`` to a filesystem path, or ``None`` when it names nothing."""
    resolved = resolve_url(url)
    url_type = parse_url(url)
    if url_type is UrlType.FILE:
        result = resolved[len("file://"):]
    elif url_type is UrlType.PACKAGE:
        result = get_package_file_name(resolved, package_lookup)
    else:
        result = ""
    return Path(result) if result else None