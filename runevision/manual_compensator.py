"""Hand-tuned pitch/yaw offsets looked up by distance and height regions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

NORMAL_STR_NUM = 6


@dataclass(frozen=True)
class LineRegion:
    """Open interval ``(lower, upper)``."""

    lower: float
    upper: float

    def check_point(self, p: float) -> bool:
        return self.lower < p < self.upper

    def check_intersection(self, other: LineRegion) -> bool:
        """True when either end of ``other`` lies strictly inside this region."""
        return self.check_point(other.lower) or self.check_point(other.upper)


@dataclass
class HeightMapNode:
    height_region: LineRegion
    pitch_offset: float
    yaw_offset: float


@dataclass
class DistMapNode:
    dist_region: LineRegion
    height_map: list[HeightMapNode] = field(default_factory=list)


def parse_offsets(text: str) -> list[float]:
    """Split ``text`` on whitespace into numbers; raise ``ValueError`` on a bad token."""
    return [float(token) for token in text.split()]


class ManualCompensator:
    """A two-level map from distance and height regions to angle offsets in degrees."""

    def __init__(self) -> None:
        self.angle_offset_map: list[DistMapNode] = []

    def angle_hard_correct(self, dist: float, height: float) -> tuple[float, float]:
        """Return ``(pitch_offset, yaw_offset)``, or zeros when no region matches."""
        dist_node = next(
            (node for node in self.angle_offset_map if node.dist_region.check_point(dist)),
            None,
        )
        if dist_node is not None:
            height_node = next(
                (n for n in dist_node.height_map if n.height_region.check_point(height)),
                None,
            )
            if height_node is not None:
                return (height_node.pitch_offset, height_node.yaw_offset)
        return (0.0, 0.0)

    def update_map(
        self,
        d_region: LineRegion,
        h_region: LineRegion,
        pitch_offset: float,
        yaw_offset: float,
    ) -> bool:
        """Add an entry; False when its height region clashes with an existing one."""
        dist_node = next(
            (n for n in self.angle_offset_map if n.dist_region.check_intersection(d_region)),
            None,
        )
        height_node = HeightMapNode(h_region, pitch_offset, yaw_offset)
        if dist_node is None:
            self.angle_offset_map.append(DistMapNode(d_region, [height_node]))
            return True
        if any(n.height_region.check_intersection(h_region) for n in dist_node.height_map):
            return False
        dist_node.height_map.append(height_node)
        return True

    def update_map_by_str(self, text: str) -> bool:
        """Add an entry from ``"d_lo d_hi h_lo h_hi pitch yaw"``."""
        try:
            nums = parse_offsets(text)
        except ValueError:
            return False
        if len(nums) != NORMAL_STR_NUM:
            return False
        return self.update_map(
            LineRegion(nums[0], nums[1]), LineRegion(nums[2], nums[3]), nums[4], nums[5]
        )

    def update_map_flow(self, texts: Iterable[str]) -> bool:
        """Add entries in order, stopping at the first that fails."""
        return all(self.update_map_by_str(text) for text in texts)