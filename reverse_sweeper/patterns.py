"""Shape patterns proposing mines and safe cells; the solver verifies every proposal."""

from dataclasses import dataclass
from typing import FrozenSet, List, Mapping, Tuple

from .board import BoardModel
from .utils import Cell, border_kind

# origin -> (unresolved neighbors, mines still missing)
WorkingConstraints = Mapping[Cell, Tuple[FrozenSet[Cell], int]]


@dataclass(frozen=True)
class PatternProposal:
    """
    Cells a recognized pattern claims to be mines ("M") or safe ("S").

    Attributes:
        name: Pattern label used in provenance strings.
        kind: "M" or "S".
        cells: Proposed cells.
        origins: Numbered cells that formed the pattern.
    """

    name: str
    kind: str
    cells: FrozenSet[Cell]
    origins: Tuple[Cell, ...]


def _line_patterns(model: BoardModel, working: WorkingConstraints) -> List[PatternProposal]:
    """N, N+1, N runs of revealed numbers along a row or a column."""
    proposals: List[PatternProposal] = []

    for center in sorted(working):
        value = model.values[center]
        for dr, dc in ((0, 1), (1, 0)):
            a = (center[0] - dr, center[1] - dc)
            b = (center[0] + dr, center[1] + dc)
            if a not in working or b not in working:
                continue
            if model.values[a] != value - 1 or model.values[b] != value - 1:
                continue

            u_center, m_center = working[center]
            u_a, _ = working[a]
            u_b, _ = working[b]
            origins = (a, center, b)
            name = f"{value - 1}-{value}-{value - 1}"

            outer_nbhd = set(model.neighbors(a)) | set(model.neighbors(b)) | {a, b}
            unique = u_center - outer_nbhd
            if unique and len(unique) == m_center:
                proposals.append(PatternProposal(name, "M", frozenset(unique), origins))
                outer_only = (u_a | u_b) - set(model.neighbors(center))
                if outer_only:
                    proposals.append(PatternProposal(name, "S", frozenset(outer_only), origins))

            # Wall form: the cells shared with exactly one outer number carry the mines.
            shared_one = (u_center & u_a) ^ (u_center & u_b)
            shared_all = u_center & u_a & u_b
            if shared_one:
                proposals.append(PatternProposal(name, "M", frozenset(shared_one), origins))
            if shared_all:
                proposals.append(PatternProposal(name, "S", frozenset(shared_all), origins))

    return proposals


def _adjacent_pair_patterns(
    model: BoardModel, working: WorkingConstraints
) -> List[PatternProposal]:
    """Orthogonally adjacent numbers whose exclusive cells are settled by their difference."""
    proposals: List[PatternProposal] = []

    for first in sorted(working):
        for dr, dc in ((0, 1), (1, 0)):
            second = (first[0] + dr, first[1] + dc)
            if second not in working:
                continue
            u1, m1 = working[first]
            u2, m2 = working[second]
            origins = (first, second)

            for (ua, ma), (ub, mb) in (((u1, m1), (u2, m2)), ((u2, m2), (u1, m1))):
                excl_a = ua - ub
                excl_b = ub - ua
                if ma == 0 and mb == 1 and len(excl_b) == 1:
                    proposals.append(PatternProposal("1-1", "M", frozenset(excl_b), origins))
                elif excl_b and mb - ma == len(excl_b):
                    proposals.append(
                        PatternProposal("adjacent difference", "M", frozenset(excl_b), origins)
                    )
                    if excl_a:
                        proposals.append(
                            PatternProposal("adjacent difference", "S", frozenset(excl_a), origins)
                        )

    return proposals


def _border_patterns(model: BoardModel, working: WorkingConstraints) -> List[PatternProposal]:
    """Corner and edge numbers equal to their remaining unresolved neighbors."""
    proposals: List[PatternProposal] = []
    if model.size is None:
        return proposals

    for origin in sorted(working):
        unresolved, missing = working[origin]
        if not unresolved or missing != len(unresolved):
            continue
        kind = border_kind(origin, model.size.rows, model.size.cols)
        if kind == "corner":
            name = f"corner-{model.values[origin]}"
        elif kind == "edge":
            name = "edge exhausted"
        else:
            continue
        proposals.append(PatternProposal(name, "M", unresolved, (origin,)))

    return proposals


def find_patterns(model: BoardModel, working: WorkingConstraints) -> List[PatternProposal]:
    """
    Collect every pattern proposal on the current working constraints.

    Args:
        model: Board model supplying the declared numbers and geometry.
        working: Active constraints after the deductions made so far.

    Returns:
        Unverified proposals, in deterministic order.
    """
    return (
        _line_patterns(model, working)
        + _adjacent_pair_patterns(model, working)
        + _border_patterns(model, working)
    )
