"""
Proportional Area Packer
========================

Squarified treemap: tiles a rectangle with one sub-rectangle per weighted
item, each tile's area proportional to the item's weight.

GUARANTEES:
- Tiles cover the bounds exactly (no gaps, no interior overlaps)
- Larger weight => larger (or equal) area
- Zero and near-zero weights go to a trailing band whose tiles are at
  least min_tile_size on each side, as long as the band fits in half the
  shorter side
- Iterative row accumulation; no recursion depth concerns
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple
import math

from ..contracts.base import Error, ErrorCode, Rect, RiskLevel
from ..contracts.config import PackerConfig
from ..contracts.events import AuditEventType
from ..contracts.graph import Tile, TileSection, WeightedItem
from ..observability import LayoutObserver


UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class TreemapLayout:
    """Packed tiles, optionally grouped into horizontal sections."""
    bounds: Rect
    tiles: Tuple[Tile, ...] = field(default_factory=tuple)
    sections: Tuple[TileSection, ...] = field(default_factory=tuple)
    warnings: Tuple[Error, ...] = field(default_factory=tuple)

    @property
    def total_area(self) -> float:
        return sum(tile.area for tile in self.tiles)


def worst_ratio(row: Sequence[float], side: float) -> float:
    """
    Worst aspect ratio of a row of areas laid against `side`.

    max(side² · max / s², s² / (side² · min)) with s = sum(row).
    """
    if not row or side <= 0:
        return math.inf
    total = sum(row)
    smallest = min(row)
    if total <= 0 or smallest <= 0:
        return math.inf
    side_sq = side * side
    total_sq = total * total
    return max(side_sq * max(row) / total_sq, total_sq / (side_sq * smallest))


class AreaPacker:
    """
    Squarified treemap packer.

    Weights are normalized to areas of the target rectangle, then rows are
    grown greedily while the worst aspect ratio does not get worse.
    """

    def __init__(
        self,
        config: Optional[PackerConfig] = None,
        observer: Optional[LayoutObserver] = None
    ):
        self._config = config or PackerConfig()
        self._observer = observer or LayoutObserver()

    @property
    def config(self) -> PackerConfig:
        return self._config

    # =========================================================================
    # FLAT PACKING
    # =========================================================================

    def pack(self, items: Sequence[WeightedItem], bounds: Rect) -> Tuple[Tile, ...]:
        """One tile per item, filling bounds."""
        return self.pack_layout(items, bounds).tiles

    def pack_layout(self, items: Sequence[WeightedItem], bounds: Rect) -> TreemapLayout:
        with self._observer.timed("packer"):
            tiles, warnings = self._pack(list(items), bounds)
        self._observer.collect_metric("nodes_placed", len(tiles), {"component": "packer"})
        return TreemapLayout(bounds=bounds, tiles=tiles, warnings=tuple(warnings))

    def _pack(self, items: List[WeightedItem], bounds: Rect) -> Tuple[Tuple[Tile, ...], List[Error]]:
        warnings: List[Error] = []

        if not items:
            return (), warnings

        if bounds.is_degenerate:
            warnings.append(self._warn(
                ErrorCode.DEGENERATE_BOUNDS,
                "Bounds have no area; nothing packed",
                width=bounds.width, height=bounds.height
            ))
            return (), warnings

        total = sum(item.weight for item in items)
        if total <= 0:
            warnings.append(self._warn(
                ErrorCode.ZERO_TOTAL_WEIGHT,
                "All weights are zero; using minimum-size tiles",
                items=len(items)
            ))
            return self._placeholder_tiles(items, bounds), warnings

        ranked = sorted(items, key=lambda item: (-item.weight, item.item_id))
        keep = len(ranked) - self._floored_count(ranked, bounds)
        main_items, floored_items = ranked[:keep], ranked[keep:]

        region, band_rects = self._band(len(floored_items), bounds)
        main_total = sum(item.weight for item in main_items)
        areas = [region.area * item.weight / main_total for item in main_items]

        rects = self._squarify(areas, region) + band_rects
        tiles = tuple(
            Tile(
                item_id=item.item_id,
                rect=rect,
                weight=item.weight,
                risk_level=item.risk_level,
                label=item.label
            )
            for item, rect in zip(main_items + floored_items, rects)
        )
        return tiles, warnings

    # =========================================================================
    # MINIMUM TILE BAND
    # =========================================================================

    def _band_shape(self, count: int, bounds: Rect) -> Tuple[bool, float, float, float, List[int]]:
        """
        (horizontal, length, depth, row_depth, items per row) for `count` floored tiles.

        The band runs along the longer side of bounds in rows of min_tile_size
        depth, never deeper than half the shorter side. Rows holding fewer
        tiles come first.
        """
        horizontal = bounds.width >= bounds.height
        length, depth = (bounds.width, bounds.height) if horizontal else (bounds.height, bounds.width)
        side = self._config.min_tile_size
        per_row = max(1, int(length // side))
        rows = -(-count // per_row)
        row_depth = min(side, depth / (2.0 * rows))
        base, extra = divmod(count, rows)
        return horizontal, length, depth, row_depth, [base] * (rows - extra) + [base + 1] * extra

    def _floored_count(self, ranked: List[WeightedItem], bounds: Rect) -> int:
        """
        How many of the lightest items go to the minimum tile band.

        Zero weights always do. The next lightest joins while its
        proportional share of the remaining area is below the largest band
        tile, so a heavier item never gets a smaller tile.
        """
        count = len(ranked)
        floored = sum(1 for item in ranked if item.weight <= 0)
        while floored < count - 1:
            if floored:
                _, length, _, row_depth, sizes = self._band_shape(floored, bounds)
                threshold = length * row_depth / sizes[0]
                remaining = bounds.area - length * row_depth * len(sizes)
            else:
                threshold = self._config.min_tile_size ** 2
                remaining = bounds.area
            main = ranked[:count - floored]
            if remaining * main[-1].weight / sum(item.weight for item in main) >= threshold:
                break
            floored += 1
        return floored

    def _band(self, count: int, bounds: Rect) -> Tuple[Rect, List[Rect]]:
        """
        Split bounds into the squarify region and the band tiles.

        The band sits at the far end of the shorter side. The last row and
        the last tile of each row absorb floating-point drift.
        """
        if count == 0:
            return bounds, []

        horizontal, length, depth, row_depth, sizes = self._band_shape(count, bounds)
        offset = depth - row_depth * len(sizes)
        rects: List[Rect] = []
        for r, size in enumerate(sizes):
            start = offset + r * row_depth
            thickness = depth - start if r == len(sizes) - 1 else row_depth
            for j in range(size):
                lo = j * length / size
                hi = length if j == size - 1 else (j + 1) * length / size
                if horizontal:
                    rects.append(Rect(bounds.x + lo, bounds.y + start, hi - lo, thickness))
                else:
                    rects.append(Rect(bounds.x + start, bounds.y + lo, thickness, hi - lo))

        if horizontal:
            region = Rect(bounds.x, bounds.y, bounds.width, offset)
        else:
            region = Rect(bounds.x, bounds.y, offset, bounds.height)
        return region, rects


    def _squarify(self, areas: List[float], bounds: Rect) -> List[Rect]:
        rects: List[Rect] = []
        x, y, width, height = bounds.x, bounds.y, bounds.width, bounds.height
        index = 0
        count = len(areas)

        while index < count:
            side = min(width, height)
            row = [areas[index]]
            cursor = index + 1
            while cursor < count and worst_ratio(row + [areas[cursor]], side) <= worst_ratio(row, side):
                row.append(areas[cursor])
                cursor += 1

            is_last = cursor >= count
            row_rects, (x, y, width, height) = self._layout_row(row, x, y, width, height, is_last)
            rects.extend(row_rects)
            index = cursor

        return rects

    @staticmethod
    def _layout_row(
        row: List[float],
        x: float,
        y: float,
        width: float,
        height: float,
        is_last: bool
    ) -> Tuple[List[Rect], Tuple[float, float, float, float]]:
        """
        Cut a strip off the remaining rectangle for one row.

        The strip runs across the longer dimension. The last row takes the
        whole remainder and the last tile of a row takes the rest of its
        strip, which absorbs floating-point drift.
        """
        row_total = sum(row)
        rects: List[Rect] = []

        if width >= height:
            strip = width if is_last or height <= 0 else min(width, row_total / height)
            cursor = y
            for i, area in enumerate(row):
                if i == len(row) - 1:
                    extent = y + height - cursor
                else:
                    extent = area / strip if strip > 0 else 0.0
                extent = max(0.0, extent)
                rects.append(Rect(x, cursor, max(0.0, strip), extent))
                cursor += extent
            return rects, (x + strip, y, max(0.0, width - strip), height)

        strip = height if is_last or width <= 0 else min(height, row_total / width)
        cursor = x
        for i, area in enumerate(row):
            if i == len(row) - 1:
                extent = x + width - cursor
            else:
                extent = area / strip if strip > 0 else 0.0
            extent = max(0.0, extent)
            rects.append(Rect(cursor, y, extent, max(0.0, strip)))
            cursor += extent
        return rects, (x, y + strip, width, max(0.0, height - strip))

    def _placeholder_tiles(self, items: List[WeightedItem], bounds: Rect) -> Tuple[Tile, ...]:
        """Minimum-size tiles in reading order; may overflow the bounds vertically."""
        side = self._config.min_tile_size
        columns = max(1, int(bounds.width // side))
        ordered = sorted(items, key=lambda item: item.item_id)
        return tuple(
            Tile(
                item_id=item.item_id,
                rect=Rect(bounds.x + (i % columns) * side, bounds.y + (i // columns) * side, side, side),
                weight=item.weight,
                risk_level=item.risk_level,
                label=item.label
            )
            for i, item in enumerate(ordered)
        )

    # =========================================================================
    # GROUPED PACKING
    # =========================================================================

    def pack_groups(
        self,
        groups: Sequence[Tuple[str, Sequence[WeightedItem]]],
        bounds: Rect
    ) -> TreemapLayout:
        """
        Stack one horizontal section per group, top to bottom, in the given order.

        Section height = max(min_section_height, height × groupWeight / grandWeight).
        Groups without items are skipped and consume no space.
        """
        with self._observer.timed("packer"):
            layout = self._pack_groups(groups, bounds)
        self._observer.collect_metric("nodes_placed", len(layout.tiles), {"component": "packer"})
        return layout

    def _pack_groups(
        self,
        groups: Sequence[Tuple[str, Sequence[WeightedItem]]],
        bounds: Rect
    ) -> TreemapLayout:
        populated = [(key, list(items)) for key, items in groups if items]
        warnings: List[Error] = []

        if not populated:
            return TreemapLayout(bounds=bounds)

        if bounds.is_degenerate:
            warnings.append(self._warn(
                ErrorCode.DEGENERATE_BOUNDS,
                "Bounds have no area; nothing packed",
                width=bounds.width, height=bounds.height
            ))
            return TreemapLayout(bounds=bounds, warnings=tuple(warnings))

        grand_total = sum(item.weight for _, items in populated for item in items)
        sections: List[TileSection] = []
        tiles: List[Tile] = []
        cursor = bounds.y

        for key, items in populated:
            group_total = sum(item.weight for item in items)
            share = bounds.height * group_total / grand_total if grand_total > 0 else 0.0
            section_rect = Rect(bounds.x, cursor, bounds.width, max(self._config.min_section_height, share))

            section_tiles, section_warnings = self._pack(items, section_rect)
            warnings.extend(section_warnings)
            sections.append(TileSection(
                group_key=key,
                rect=section_rect,
                tiles=section_tiles,
                total_weight=group_total
            ))
            tiles.extend(section_tiles)
            cursor += section_rect.height

        return TreemapLayout(
            bounds=bounds,
            tiles=tuple(tiles),
            sections=tuple(sections),
            warnings=tuple(warnings)
        )

    def pack_by_risk(self, items: Sequence[WeightedItem], bounds: Rect) -> TreemapLayout:
        """Grouped variant with one section per risk tier (config.tier_order)."""
        by_tier: Dict[Optional[RiskLevel], List[WeightedItem]] = {}
        for item in items:
            by_tier.setdefault(item.risk_level, []).append(item)

        groups: List[Tuple[str, List[WeightedItem]]] = [
            (tier.value, by_tier.get(tier, [])) for tier in self._config.tier_order
        ]
        # Items without a tier are not hidden; they get a trailing section
        unclassified = [
            item for tier, tier_items in by_tier.items()
            if tier not in self._config.tier_order
            for item in tier_items
        ]
        groups.append((UNCLASSIFIED, unclassified))
        return self.pack_groups(groups, bounds)

    def _warn(self, code: ErrorCode, message: str, **context: object) -> Error:
        error = Error.now(code, message, **context)
        self._observer.log_error("packer", AuditEventType.DATA_QUALITY, error)
        return error
