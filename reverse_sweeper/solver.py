"""Deduction solver extracting certain mines and certain safe cells from a board model."""

import itertools
import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import (
    AbstractSet,
    DefaultDict,
    Deque,
    Dict,
    FrozenSet,
    List,
    Sequence,
    Set,
    Tuple,
    Union,
    cast,
)

from .board import BoardModel
from .config import DEFAULT_CONFIG, EngineConfig
from .patterns import PatternProposal, find_patterns
from .utils import Cell, format_cell

logger = logging.getLogger(__name__)

ZERO_NEIGHBOR = "zero-neighbor"


@dataclass
class DeductionResult:
    """
    Disjoint certainty sets produced by one solver pass, keyed by cell with provenance.

    Attributes:
        certain_mines: Cells proven to hold a mine.
        certain_safes: Cells proven to be safe.
        rolled_back: True if constraint validation discarded the deduced certainties.
        conflicts: Cells that were proposed both as mine and as safe.
        violated: Origins of constraints found infeasible during validation.
        stats: Per-technique attempt/inference counters.
    """

    certain_mines: Dict[Cell, str] = field(default_factory=dict)
    certain_safes: Dict[Cell, str] = field(default_factory=dict)
    rolled_back: bool = False
    conflicts: FrozenSet[Cell] = frozenset()
    violated: Tuple[Cell, ...] = ()
    stats: Dict[str, int] = field(default_factory=dict)

    def is_certain(self, cell: Cell) -> bool:
        return cell in self.certain_mines or cell in self.certain_safes


def enumerate_assignments(
    constraints: Sequence[Tuple[AbstractSet[Cell], int]],
) -> Tuple[int, DefaultDict[Cell, int]]:
    """
    Enumerate every mine/no-mine assignment satisfying all given constraints.

    Each constraint is (unresolved_cells, mines_required). Cells are assigned
    constraint by constraint; only combinations matching each count are
    expanded, which visits exactly the consistent assignments of the union.

    Returns:
        Tuple of (consistent assignment count, cell -> number of consistent
        assignments in which the cell holds a mine).
    """
    mines_frequency_counts: DefaultDict[Cell, int] = defaultdict(int)
    assignment: Dict[Cell, str] = {}
    successful_assignments_count = 0

    def dfs(i: int) -> None:
        nonlocal successful_assignments_count

        if i == len(constraints):
            successful_assignments_count += 1
            for cell, val in assignment.items():
                if val == "M":
                    mines_frequency_counts[cell] += 1
            return

        unrevealed_adjacent, expected_mines_count = constraints[i]

        assigned_mines_count = 0
        unassigned_cells: List[Cell] = []
        for n in sorted(unrevealed_adjacent):
            v = assignment.get(n)
            if v is None:
                unassigned_cells.append(n)
            elif v == "M":
                assigned_mines_count += 1

        needed_mines_count = expected_mines_count - assigned_mines_count
        if needed_mines_count < 0 or needed_mines_count > len(unassigned_cells):
            return

        for mines_tuple in itertools.combinations(unassigned_cells, needed_mines_count):
            mines_set = set(mines_tuple)
            for cell in unassigned_cells:
                assignment[cell] = "M" if cell in mines_set else "S"
            dfs(i + 1)

        for cell in unassigned_cells:
            del assignment[cell]

    dfs(0)
    return successful_assignments_count, mines_frequency_counts


class DeductionSolver:
    """
    Constraint-based deduction over one board model.

    The solver escalates through:
    1. Local counting: a constraint with no missing mines or no spare cells
    2. Paired inference: subset and intersection bounds between constraint pairs
    3. Bounded enumeration: exhaustive assignments of small connected groups
    4. Pattern recognition: shape proposals confirmed by local enumeration
    5. Validation: contradiction checks with rollback of unsound certainties
    Passes 1-2 are re-run to a fixed point after every change.
    """

    def __init__(self, model: BoardModel, config: EngineConfig = DEFAULT_CONFIG) -> None:
        """
        Initialize a solver bound to one turn's board model.

        Args:
            model: Board model built for the current turn. It is never mutated.
            config: Engine constants (enumeration cap, iteration caps).
        """
        self.model = model
        self.config = config

        # Metrics / counters (for analysis)
        self.inferred_single_count: int = 0
        self.attempted_single_count: int = 0
        self.inferred_paired_count: int = 0
        self.attempted_paired_count: int = 0
        self.inferred_bruteforce_count: int = 0
        self.attempted_bruteforce_count: int = 0
        self.skipped_group_count: int = 0
        self.inferred_pattern_count: int = 0
        self.rejected_pattern_count: int = 0

        self.certain_mines: Dict[Cell, str] = {}
        self.certain_safes: Dict[Cell, str] = {}
        self.conflicts: Set[Cell] = set()
        self.protected_safes: Set[Cell] = set()

        # Working copy of the constraint system:
        # - revealed_frontier[origin] = [set_of_unresolved_neighbors, mines_still_missing]
        # - unrevealed_frontier[cell] = set_of_constraint_origins_touching_cell
        self.revealed_frontier: Dict[Cell, List[Union[Set[Cell], int]]] = {}
        self.unrevealed_frontier: DefaultDict[Cell, Set[Cell]] = defaultdict(set)

        # Work queues for inference (FIFO)
        self.single_inference_queue: Deque[Tuple[Cell, str]] = deque()
        self.single_inference_set: Set[Cell] = set()

        self.paired_inference_queue: Deque[Tuple[Cell, Cell]] = deque()
        self.paired_inference_set: Set[Tuple[Cell, Cell]] = set()

    # -------------------------------------------------------------------------
    # Frontier bookkeeping
    # -------------------------------------------------------------------------

    def _entry(self, origin: Cell) -> Tuple[Set[Cell], int]:
        entry = self.revealed_frontier[origin]
        return cast(Set[Cell], entry[0]), cast(int, entry[1])

    def graph_neighbors(self, origin: Cell) -> List[Cell]:
        """
        Return other active constraints sharing at least one unresolved cell with origin.
        """
        graph_neighbors: List[Cell] = []
        seen: Set[Cell] = {origin}

        unresolved, _ = self._entry(origin)
        for cell in unresolved:
            for other in self.unrevealed_frontier[cell]:
                if other in seen:
                    continue
                graph_neighbors.append(other)
                seen.add(other)

        return graph_neighbors

    def _schedule(self, origin: Cell) -> None:
        """Queue a single inference for origin if it is trivial, else its pairings."""
        unresolved, missing = self._entry(origin)

        self.attempted_single_count += 1
        if missing == 0 or missing == len(unresolved):
            if origin not in self.single_inference_set:
                self.single_inference_queue.append((origin, "S" if missing == 0 else "M"))
                self.single_inference_set.add(origin)
            else:
                self.attempted_single_count -= 1
            return

        for other in self.graph_neighbors(origin):
            cand = (origin, other) if origin <= other else (other, origin)
            if cand not in self.paired_inference_set:
                self.paired_inference_queue.append(cand)
                self.paired_inference_set.add(cand)

    def _drop_constraint(self, origin: Cell) -> None:
        unresolved, _ = self._entry(origin)
        for cell in unresolved:
            self.unrevealed_frontier[cell].discard(origin)
            if not self.unrevealed_frontier[cell]:
                del self.unrevealed_frontier[cell]
        del self.revealed_frontier[origin]

    def update_frontier(self, cell: Cell, kind: str) -> None:
        """
        Remove a newly classified cell from every constraint touching it.

        Args:
            cell: The classified cell.
            kind: "M" for a certain mine, "S" for a certain safe cell.
        """
        affected: Set[Cell] = self.unrevealed_frontier.pop(cell, set())

        for origin in affected:
            if origin not in self.revealed_frontier:
                continue
            unresolved, missing = self._entry(origin)
            unresolved.discard(cell)

            if kind == "M":
                missing -= 1
                self.revealed_frontier[origin][1] = missing

            if missing < 0 or missing > len(unresolved):
                logger.warning(
                    "Constraint %s became infeasible after classifying %s.",
                    format_cell(origin),
                    format_cell(cell),
                )
                self._drop_constraint(origin)
                continue

            if not unresolved:
                del self.revealed_frontier[origin]
                continue

            self._schedule(origin)

    def _resolve(self, cell: Cell, kind: str, provenance: str) -> bool:
        """
        Record a certainty and propagate it; returns True if it was new.

        A cell proposed both ways is kept in both sets and left for validation.
        """
        target = self.certain_mines if kind == "M" else self.certain_safes
        opposite = self.certain_safes if kind == "M" else self.certain_mines

        if cell in target:
            return False
        if cell in opposite:
            logger.warning(
                "Contradiction at %s: %s vs %s.", format_cell(cell), opposite[cell], provenance
            )
            self.conflicts.add(cell)
            target[cell] = provenance
            return False

        target[cell] = provenance
        self.update_frontier(cell, kind)
        return True

    def initialize_frontier(self) -> None:
        """Load feasible model constraints into the working frontier and seed zero neighbors."""
        for origin, constraint in self.model.constraints.items():
            if not constraint.feasible or not constraint.unresolved:
                continue
            self.revealed_frontier[origin] = [set(constraint.unresolved), constraint.missing]
            for cell in constraint.unresolved:
                self.unrevealed_frontier[cell].add(origin)

        for origin in list(self.revealed_frontier):
            self._schedule(origin)

        # Neighbors of a revealed 0 are safe before anything else is tried.
        for origin, constraint in self.model.constraints.items():
            if constraint.value != 0 or not constraint.feasible:
                continue
            for cell in sorted(constraint.unresolved):
                self.protected_safes.add(cell)
                self._resolve(cell, "S", ZERO_NEIGHBOR)

    # -------------------------------------------------------------------------
    # Local inference implementation
    # -------------------------------------------------------------------------

    def single_infer(self, origin: Cell, infer_type: str) -> None:
        """
        Apply trivial single-constraint inference from one numbered cell.

        Args:
            origin: The constraint's numbered cell.
            infer_type: "S" to classify all unresolved neighbors as safe,
                        "M" to classify all as mines.
        """
        if origin not in self.revealed_frontier:
            self.attempted_single_count -= 1
            return

        unresolved, _ = self._entry(origin)
        provenance = f"local count {format_cell(origin)}"
        for cell in sorted(unresolved):
            if self._resolve(cell, infer_type, provenance):
                self.inferred_single_count += 1

    def paired_infer(self, c1: Cell, c2: Cell) -> bool:
        """
        Apply subset/intersection inference from two overlapping constraints.

        With I = U1 & U2, the mines t inside I are bounded by
        max(0, m1 - |U1 - I|, m2 - |U2 - I|) <= t <= min(|I|, m1, m2).
        The bounds settle the exclusive parts of both constraints, and when
        they meet, the intersection itself.

        Returns:
            True if new certainties were applied.
        """
        if c1 not in self.revealed_frontier or c2 not in self.revealed_frontier:
            return False

        self.attempted_paired_count += 1

        unresolved1, mines1 = self._entry(c1)
        unresolved2, mines2 = self._entry(c2)

        intersection = unresolved1 & unresolved2
        if not intersection:
            return False

        only1 = unresolved1 - intersection
        only2 = unresolved2 - intersection

        t_low = max(0, mines1 - len(only1), mines2 - len(only2))
        t_high = min(len(intersection), mines1, mines2)

        if t_low > t_high:
            logger.warning(
                "Constraints %s and %s cannot both hold; skipping the pair.",
                format_cell(c1),
                format_cell(c2),
            )
            return False

        if not only1 or not only2:
            label = f"subset {format_cell(c1)}/{format_cell(c2)}"
        else:
            label = f"intersection {format_cell(c1)}/{format_cell(c2)}"

        proposals: List[Tuple[FrozenSet[Cell], str]] = []
        for only, mines in ((only1, mines1), (only2, mines2)):
            if not only:
                continue
            if mines - t_low == 0:
                proposals.append((frozenset(only), "S"))
            elif mines - t_high == len(only):
                proposals.append((frozenset(only), "M"))

        if t_low == t_high:
            if t_low == 0:
                proposals.append((frozenset(intersection), "S"))
            elif t_low == len(intersection):
                proposals.append((frozenset(intersection), "M"))

        changed = False
        for cells, kind in proposals:
            for cell in sorted(cells):
                if self._resolve(cell, kind, label):
                    self.inferred_paired_count += 1
                    changed = True

        return changed

    def _run_local_passes(self) -> None:
        """Drain single and paired queues until neither produces anything new."""
        for _ in range(self.config.max_local_iterations):
            while self.single_inference_queue:
                origin, infer_type = self.single_inference_queue.popleft()
                self.single_inference_set.discard(origin)
                self.single_infer(origin, infer_type)

            restart_single = False
            while self.paired_inference_queue:
                c1, c2 = self.paired_inference_queue.popleft()
                self.paired_inference_set.discard((c1, c2))

                if self.paired_infer(c1, c2):
                    restart_single = True
                    break

            if not restart_single:
                return

        logger.warning(
            "Local deduction stopped at the iteration cap (%d rounds).",
            self.config.max_local_iterations,
        )

    # -------------------------------------------------------------------------
    # Bounded enumeration
    # -------------------------------------------------------------------------

    def _get_frontier_subgroups(
        self, max_cells: int
    ) -> Tuple[List[Tuple[List[Cell], FrozenSet[Cell]]], int]:
        """
        Partition the active constraints into groups sharing unresolved cells.

        Returns:
            Tuple of:
            - subgroups: (origins, unresolved_cells) pairs within the size bound,
              sorted by cell count
            - number of groups skipped for exceeding max_cells
        """
        subgroups: List[Tuple[List[Cell], FrozenSet[Cell]]] = []
        seen_numbered: Set[Cell] = set()
        skipped = 0

        for start in sorted(self.revealed_frontier):
            if start in seen_numbered:
                continue

            stack: List[Cell] = [start]
            seen_numbered.add(start)
            seen_unrevealed: Set[Cell] = set()
            subgroup: List[Cell] = []

            while stack:
                origin = stack.pop()
                subgroup.append(origin)

                unresolved, _ = self._entry(origin)
                for n in unresolved:
                    if n in seen_unrevealed:
                        continue
                    seen_unrevealed.add(n)

                    for nbr_num in self.unrevealed_frontier[n]:
                        if nbr_num in self.revealed_frontier and nbr_num not in seen_numbered:
                            stack.append(nbr_num)
                            seen_numbered.add(nbr_num)

            if len(seen_unrevealed) > max_cells:
                skipped += 1
                logger.debug(
                    "Skipping enumeration of a %d-cell group (cap %d).",
                    len(seen_unrevealed),
                    max_cells,
                )
                continue

            subgroups.append((subgroup, frozenset(seen_unrevealed)))

        return sorted(subgroups, key=lambda g: len(g[1])), skipped

    def brute_force_infer(self) -> bool:
        """
        Enumerate assignments of every small connected group and apply forced cells.

        Returns:
            True if new certainties were applied.
        """
        self.attempted_bruteforce_count += 1

        subgroups, skipped = self._get_frontier_subgroups(self.config.brute_force_max_cells)
        self.skipped_group_count += skipped

        changed = False
        for origins, cells in subgroups:
            group = [self._entry(o) for o in origins if o in self.revealed_frontier]
            if not group:
                continue
            assignments_count, mines_frequency_counts = enumerate_assignments(group)

            if assignments_count == 0:
                logger.warning(
                    "No consistent assignment for the group around %s.",
                    ", ".join(format_cell(o) for o in sorted(origins)),
                )
                continue

            provenance = f"enumeration of {len(cells)} cells ({assignments_count} solutions)"
            for cell in sorted(cells):
                freq = mines_frequency_counts[cell]
                if freq == assignments_count:
                    kind = "M"
                elif freq == 0:
                    kind = "S"
                else:
                    continue
                if self._resolve(cell, kind, provenance):
                    self.inferred_bruteforce_count += 1
                    changed = True

        return changed

    # -------------------------------------------------------------------------
    # Pattern recognition
    # -------------------------------------------------------------------------

    def _verify_proposal(self, proposal: PatternProposal) -> List[Cell]:
        """
        Keep the proposal cells that every local assignment agrees with.

        Only constraints touching the proposal are enumerated; a cell forced in
        that subset is forced on the whole board as well.
        """
        cells = [
            c
            for c in sorted(proposal.cells)
            if c in self.unrevealed_frontier
            and c not in self.certain_mines
            and c not in self.certain_safes
        ]
        if not cells:
            return []

        origins: Set[Cell] = {o for o in proposal.origins if o in self.revealed_frontier}
        for c in cells:
            origins |= self.unrevealed_frontier[c]

        scope: Set[Cell] = set()
        for o in origins:
            scope |= self._entry(o)[0]
        if len(scope) > self.config.pattern_verification_max_cells:
            return []

        count, freq = enumerate_assignments([self._entry(o) for o in sorted(origins)])
        if count == 0:
            return []

        target = count if proposal.kind == "M" else 0
        return [c for c in cells if freq[c] == target]

    def pattern_infer(self) -> bool:
        """
        Apply verified shape-pattern proposals.

        Returns:
            True if new certainties were applied.
        """
        working = {
            origin: (frozenset(self._entry(origin)[0]), self._entry(origin)[1])
            for origin in self.revealed_frontier
        }

        changed = False
        for proposal in find_patterns(self.model, working):
            verified = self._verify_proposal(proposal)
            if not verified:
                self.rejected_pattern_count += 1
            for cell in verified:
                if self._resolve(cell, proposal.kind, f"pattern {proposal.name}"):
                    self.inferred_pattern_count += 1
                    changed = True

        return changed

    # -------------------------------------------------------------------------
    # Validation and main loop
    # -------------------------------------------------------------------------

    def stats(self) -> Dict[str, int]:
        return {
            "inferred_single_count": self.inferred_single_count,
            "attempted_single_count": self.attempted_single_count,
            "inferred_paired_count": self.inferred_paired_count,
            "attempted_paired_count": self.attempted_paired_count,
            "inferred_bruteforce_count": self.inferred_bruteforce_count,
            "attempted_bruteforce_count": self.attempted_bruteforce_count,
            "skipped_group_count": self.skipped_group_count,
            "inferred_pattern_count": self.inferred_pattern_count,
            "rejected_pattern_count": self.rejected_pattern_count,
        }

    def validate(self) -> DeductionResult:
        """
        Check the deduced certainties against every model constraint.

        Cells in both sets are dropped from both (neighbors of a revealed 0
        stay safe). If any constraint is over-flagged or can no longer be
        satisfied, all deduced certainties are discarded.
        """
        mines = dict(self.certain_mines)
        safes = dict(self.certain_safes)

        for cell in sorted(set(mines) & set(safes)):
            del mines[cell]
            del safes[cell]
            if cell in self.protected_safes:
                safes[cell] = ZERO_NEIGHBOR
            logger.warning("Discarding contradictory certainty at %s.", format_cell(cell))

        violated: List[Cell] = []
        for origin, constraint in self.model.constraints.items():
            deduced_mines = sum(1 for c in constraint.unresolved if c in mines)
            deduced_safes = sum(1 for c in constraint.unresolved if c in safes)
            open_cells = len(constraint.unresolved) - deduced_mines - deduced_safes

            if (
                constraint.flagged_count > constraint.value
                or deduced_mines > constraint.missing
                or constraint.missing - deduced_mines > open_cells
            ):
                violated.append(origin)

        rolled_back = bool(violated)
        if rolled_back:
            logger.warning(
                "Discarding deduced certainties: %d constraint(s) violated, first at %s.",
                len(violated),
                format_cell(violated[0]),
            )
            mines = {}
            safes = {cell: ZERO_NEIGHBOR for cell in sorted(self.protected_safes)}

        return DeductionResult(
            certain_mines=mines,
            certain_safes=safes,
            rolled_back=rolled_back,
            conflicts=frozenset(self.conflicts),
            violated=tuple(violated),
            stats=self.stats(),
        )

    def solve(self) -> DeductionResult:
        """
        Run all deduction passes and return validated, disjoint certainty sets.

        Returns:
            A DeductionResult; empty for an inert model.
        """
        if self.model.is_inert:
            return DeductionResult(stats=self.stats())

        self.initialize_frontier()
        self._run_local_passes()

        for _ in range(self.config.max_outer_rounds):
            enumerated = self.brute_force_infer()
            if enumerated:
                self._run_local_passes()

            matched = self.pattern_infer()
            if matched:
                self._run_local_passes()

            if not enumerated and not matched:
                break

        result = self.validate()
        logger.debug(
            "Deduction finished: %d mines, %d safe cells, stats=%s",
            len(result.certain_mines),
            len(result.certain_safes),
            result.stats,
        )
        return result
