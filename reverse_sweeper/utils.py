"""Utility functions for the reverse Minesweeper decision engine."""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

Cell = Tuple[int, int]

# Module-level cache: (rows, cols) -> {(row, col): ((nr, nc), ...), ...}
_NEIGHBORHOODS_CACHE: Dict[
    Tuple[int, int],
    Dict[Cell, Tuple[Cell, ...]]
] = {}


def get_neighborhoods(rows: int, cols: int) -> Dict[Cell, Tuple[Cell, ...]]:
    """
    Precompute and cache 8-connected neighbor coordinates for every cell in a grid.

    Args:
        rows: Grid height (number of rows). Must be positive.
        cols: Grid width (number of columns). Must be positive.

    Returns:
        Mapping from each cell (row, col) to a tuple of valid neighboring
        coordinates (nr, nc) under 8-connectivity.

    Raises:
        ValueError: If rows or cols is non-positive.
    """
    if rows <= 0 or cols <= 0:
        raise ValueError("rows and cols must be positive.")

    key = (rows, cols)
    cached = _NEIGHBORHOODS_CACHE.get(key)
    if cached is not None:
        return cached

    neighborhoods: Dict[Cell, Tuple[Cell, ...]] = {}
    for r in range(rows):
        for c in range(cols):
            nbrs: List[Cell] = []
            for dr in (-1, 0, 1):
                for dc in (-1, 0, 1):
                    if dr == 0 and dc == 0:
                        continue
                    nr, nc = r + dr, c + dc
                    if 0 <= nr < rows and 0 <= nc < cols:
                        nbrs.append((nr, nc))
            neighborhoods[(r, c)] = tuple(nbrs)

    _NEIGHBORHOODS_CACHE[key] = neighborhoods
    return neighborhoods


def manhattan(a: Cell, b: Cell) -> int:
    """Return the Manhattan distance between two cells."""
    return abs(a[0] - b[0]) + abs(a[1] - b[1])


def nearest_distance(cell: Cell, others: Iterable[Cell]) -> Optional[int]:
    """Return the smallest Manhattan distance from cell to any of others, or None."""
    best: Optional[int] = None
    for other in others:
        d = manhattan(cell, other)
        if best is None or d < best:
            best = d
    return best


def border_kind(cell: Cell, rows: int, cols: int) -> str:
    """
    Classify a cell by its position relative to the board border.

    Returns:
        "corner", "edge", "center" (inside the middle half in both
        directions) or "interior".
    """
    r, c = cell
    on_row_border = r == 0 or r == rows - 1
    on_col_border = c == 0 or c == cols - 1

    if on_row_border and on_col_border:
        return "corner"
    if on_row_border or on_col_border:
        return "edge"

    if rows / 4 <= r < 3 * rows / 4 and cols / 4 <= c < 3 * cols / 4:
        return "center"
    return "interior"


def format_cell(cell: Cell) -> str:
    """Human-readable 1-based coordinate label used in rationale strings."""
    return f"({cell[0] + 1},{cell[1] + 1})"


def iter_reveals(history: Iterable[Any]) -> Iterable[Tuple[Cell, Any]]:
    """
    Yield (cell, content) for every reveal in a move history.

    Entries are mappings with row/col and either ``action == "flag"`` for a
    flag placement or an optional ``content`` for a reveal; objects exposing
    the same attributes are accepted too. Unreadable entries are skipped.
    """
    for entry in history or ():
        if isinstance(entry, Mapping):
            row, col = entry.get("row"), entry.get("col")
            action = entry.get("action", "reveal")
            content = entry.get("content")
        else:
            row, col = getattr(entry, "row", None), getattr(entry, "col", None)
            action = getattr(entry, "action", "reveal")
            content = getattr(entry, "content", None)
        if action != "reveal":
            continue
        if not isinstance(row, int) or not isinstance(col, int) or isinstance(row, bool):
            continue
        yield (row, col), content
