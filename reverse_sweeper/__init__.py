"""
Reverse Minesweeper decision engine

An automated player for reverse Minesweeper: given a partially revealed board,
it flags provable mines and chooses the next cell to reveal, using:
- Local counting: Trivial constraint propagation
- Paired inference: Subset and intersection bounds between constraint pairs
- Bounded enumeration: Exhaustive assignments of small connected groups
- Pattern recognition: Verified shape patterns (1-2-1, 1-1, corners, edges)
- Probability estimation: Pessimistic per-cell risk with position priors
- Cross-game memory: Size-normalized history of mines and losing sequences
"""

import logging

from .board import BoardModel, BoardSize, Constraint, build_board_model, parse_board_size
from .config import DEFAULT_CONFIG, DEFAULT_MEMORY_CONFIG, EngineConfig, MemoryConfig
from .consistency import ConsistencyReport, check_answer
from .engine import DecisionEngine, FlagAction, Move, TurnResult, analyze_board
from .memory import (
    GameMemory,
    InMemoryStore,
    JsonFileStore,
    MemoryEvaluation,
    MemoryRecord,
    normalize_position,
)
from .probability import ProbabilityEstimator, RiskEstimate
from .selector import MoveDecision, select_move
from .session import GameSession, play_cli
from .solver import DeductionResult, DeductionSolver, enumerate_assignments
from .analysis import (
    describe_turn,
    format_board_knowledge,
    format_probability_map,
    memory_heat_grid,
    plot_memory_heat_map,
    plot_probability_map,
    probability_grid,
    summarize_deductions,
    summarize_memory,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "1.0.0"

__all__ = [
    # Core classes
    "DecisionEngine",
    "DeductionSolver",
    "ProbabilityEstimator",
    "GameMemory",
    "GameSession",
    # Data types
    "BoardModel",
    "BoardSize",
    "Constraint",
    "ConsistencyReport",
    "DeductionResult",
    "FlagAction",
    "MemoryEvaluation",
    "MemoryRecord",
    "Move",
    "MoveDecision",
    "RiskEstimate",
    "TurnResult",
    # Configuration
    "EngineConfig",
    "MemoryConfig",
    "DEFAULT_CONFIG",
    "DEFAULT_MEMORY_CONFIG",
    # Persistence
    "InMemoryStore",
    "JsonFileStore",
    # Functions
    "analyze_board",
    "build_board_model",
    "check_answer",
    "enumerate_assignments",
    "normalize_position",
    "parse_board_size",
    "select_move",
    # CLI
    "play_cli",
    # Analysis functions
    "describe_turn",
    "format_board_knowledge",
    "format_probability_map",
    "probability_grid",
    "memory_heat_grid",
    "plot_probability_map",
    "plot_memory_heat_map",
    "summarize_memory",
    "summarize_deductions",
]
