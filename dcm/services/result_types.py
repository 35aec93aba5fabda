"""
Data classes shared by the compiler, the solver driver and result projection
"""
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from dcm.error_handlers.exceptions import ProjectionMismatchException


class SolveStatus(str, Enum):
    """Terminal solver status"""
    OPTIMAL = "optimal"
    FEASIBLE = "feasible"
    INFEASIBLE = "infeasible"
    UNKNOWN = "unknown"  # budget exhausted without solution or proof

    @property
    def has_solution(self) -> bool:
        return self in (SolveStatus.OPTIMAL, SolveStatus.FEASIBLE)


@dataclass(frozen=True)
class TargetDomain:
    """Assignment targets of a controllable column, in target-table row order"""
    table_name: str
    column_name: str
    identities: Tuple[Any, ...]

    def __len__(self):
        return len(self.identities)

    def indices_where(self, predicate) -> frozenset:
        """Indices of the targets whose identity satisfies ``predicate``"""
        return frozenset(i for i, identity in enumerate(self.identities) if predicate(identity))

    def index_of(self, identity) -> Optional[int]:
        for i, candidate in enumerate(self.identities):
            if candidate == identity:
                return i
        return None


@dataclass(frozen=True)
class VariableBinding:
    """Links an assignment variable back to the row it decides"""
    table_name: str
    row_index: int
    row_identity: Any
    handle: Any  # cp_model.IntVar

    @property
    def index(self) -> int:
        return self.handle.Index()


@dataclass(frozen=True)
class LoadAggregate:
    """Rows and scores behind a per-target maximum load aggregate"""
    table_name: str
    rows: Tuple[int, ...]
    scores: Tuple[int, ...]


@dataclass
class CompiledModel:
    """
    Output of one compile

    Attributes:
        model: Native CP-SAT model
        bindings: Assignment variable bindings per generated table
        target_domains: Target domain per generated table
        aggregates: Bounded aggregate variables by label (loads, objective maxima)
        load_aggregates: Rows and scores of each maximum load aggregate, by label
        encodings: Encoding chosen per constraint class label
        stats: Model size counters
        has_objective: Whether an objective was installed
    """
    model: Any
    bindings: Dict[str, List[VariableBinding]] = field(default_factory=dict)
    target_domains: Dict[str, TargetDomain] = field(default_factory=dict)
    aggregates: Dict[str, Any] = field(default_factory=dict)
    load_aggregates: Dict[str, LoadAggregate] = field(default_factory=dict)
    encodings: Dict[str, str] = field(default_factory=dict)
    stats: Dict[str, int] = field(default_factory=dict)
    has_objective: bool = False
    lock: Any = field(default_factory=threading.Lock, repr=False, compare=False)

    def tracked_variables(self) -> List[Any]:
        handles = [b.handle for bindings in self.bindings.values() for b in bindings]
        handles.extend(self.aggregates.values())
        return handles


@dataclass
class SolveResult:
    """
    Terminal status and recorded values of one solve

    Under the interval encoding a maximum load aggregate is only bounded from
    below by the cumulative, so its raw value is an upper bound on the true
    maximum. project_assignments recomputes it from the placement.
    """
    status: SolveStatus
    status_name: str
    objective_value: Optional[int] = None
    best_bound: Optional[float] = None
    wall_time: float = 0.0
    values: Dict[int, int] = field(default_factory=dict)
    aggregate_values: Dict[str, int] = field(default_factory=dict)

    def value_of(self, handle) -> int:
        """
        Solved value of a tracked variable.

        Raises:
            ProjectionMismatchException: If the status carries no solution or
                the variable has no recorded value
        """
        if not self.status.has_solution:
            raise ProjectionMismatchException(
                f"No values available: solver status is {self.status_name}",
                details={'status': self.status.value},
            )
        key = handle.Index()
        if key not in self.values:
            raise ProjectionMismatchException(
                f"Variable {handle} has no recorded value",
                details={'variable_index': key},
            )
        return self.values[key]


@dataclass(frozen=True)
class Assignment:
    """One row placed on one target"""
    table_name: str
    row_index: int
    row_identity: Any
    target_index: int
    target_identity: Any


@dataclass
class PlacementResult:
    """Projected assignments of a solved model"""
    status: SolveStatus
    objective_value: Optional[int]
    assignments: List[Assignment] = field(default_factory=list)
    aggregate_values: Dict[str, int] = field(default_factory=dict)

    def for_table(self, table_name: str) -> List[Assignment]:
        return [a for a in self.assignments if a.table_name == table_name]

    def targets_by_identity(self, table_name: str) -> Dict[Any, Any]:
        """
        Map row identity -> target identity for one table.

        Raises:
            ProjectionMismatchException: If two rows share an identity (rows of
                a table without primary key that are equal in every column)
        """
        mapping = {}
        for assignment in self.for_table(table_name):
            if assignment.row_identity in mapping:
                raise ProjectionMismatchException(
                    f"Row identity {assignment.row_identity!r} of {table_name} is not unique; "
                    f"use for_table() to read positional assignments",
                    details={'table': table_name},
                )
            mapping[assignment.row_identity] = assignment.target_identity
        return mapping


@dataclass
class PlacementOutcome:
    """What a placement run hands back to its caller"""
    status: SolveStatus
    placement: Optional[PlacementResult]
    message: str
    solve_result: Optional[SolveResult] = None
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.placement is not None
