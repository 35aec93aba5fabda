"""
Capacity and per-target aggregate encodings
============================================

Two interchangeable ways of expressing "at most C of resource R across all
rows assigned to the same target":

* Interval encoding: each row is a unit interval starting at its assignment
  variable; one cumulative constraint per resource bounds the demand covering
  every target position. Model size is O(rows) per resource, independent of
  the number of targets.
* Indicator encoding: one boolean per (row, target) pair; per-target load is
  the weighted sum of indicators. Model size is O(rows x targets), but
  per-target aggregates become plain linear expressions, which objectives
  such as "number of targets used" need.

Both encodings admit exactly the same assignments.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

from ortools.sat.python import cp_model

from dcm.error_handlers.exceptions import ConfigurationException, EncodingException
from dcm.models.qualifiers import ObjectiveKind
from dcm.services.assignment_space import AssignmentSpace

logger = logging.getLogger(__name__)


class EncodingStrategy(str, Enum):
    AUTO = "auto"
    INTERVAL = "interval"
    INDICATOR = "indicator"

    @classmethod
    def parse(cls, value: Union[str, 'EncodingStrategy']) -> 'EncodingStrategy':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ConfigurationException(
                f"Unknown encoding {value!r}; expected one of {', '.join(e.value for e in cls)}"
            )


@dataclass
class CapacityRequest:
    """A capacity constraint gathered during lowering, not yet encoded"""
    resource: str
    rows: List[int]
    demands: List[int]
    capacities: List[int]


@dataclass
class AggregateRequest:
    """A per-target aggregate objective gathered during lowering"""
    label: str
    kind: ObjectiveKind
    rows: List[int]
    scores: List[int]
    minimize: bool  # effective direction after weight sign

    @property
    def needs_target_aggregates(self) -> bool:
        """True when only explicit per-target variables express this aggregate exactly"""
        if self.kind == ObjectiveKind.TARGETS_USED:
            return True
        # A cumulative only bounds the maximum from above
        return not self.minimize


def select_encoding(requested: Union[str, EncodingStrategy], num_rows: int, num_targets: int,
                    needs_target_aggregates: bool = False) -> EncodingStrategy:
    """
    Choose the encoding for one constraint class.

    Args:
        requested: Configured strategy; AUTO applies the policy below
        num_rows: Rows being placed
        num_targets: Assignment targets
        needs_target_aggregates: Whether explicit per-target values are needed

    Returns:
        EncodingStrategy: INTERVAL or INDICATOR

    Raises:
        EncodingException: If INTERVAL is forced for an aggregate it cannot express

    Policy for AUTO: explicit per-target aggregates need indicators; otherwise
    the interval encoding is chosen when targets outnumber rows, since its size
    does not grow with the target count.
    """
    strategy = EncodingStrategy.parse(requested)
    if strategy == EncodingStrategy.INTERVAL and needs_target_aggregates:
        raise EncodingException(
            'The interval encoding cannot express explicit per-target aggregates; '
            'use the indicator or auto encoding',
            details={'rows': num_rows, 'targets': num_targets},
        )
    if strategy != EncodingStrategy.AUTO:
        return strategy
    if needs_target_aggregates:
        return EncodingStrategy.INDICATOR
    if num_targets > num_rows:
        return EncodingStrategy.INTERVAL
    return EncodingStrategy.INDICATOR


class Encoder:
    """Base class: emits capacity constraints and aggregate variables"""
    strategy: Optional[EncodingStrategy] = None

    def __init__(self, model: cp_model.CpModel, bound: int):
        self.model = model
        self.bound = bound

    def add_capacity(self, space: AssignmentSpace, request: CapacityRequest) -> None:
        raise NotImplementedError

    def max_target_load(self, space: AssignmentSpace, request: AggregateRequest):
        raise NotImplementedError

    def targets_used(self, space: AssignmentSpace, request: AggregateRequest):
        raise NotImplementedError

    def aggregate(self, space: AssignmentSpace, request: AggregateRequest):
        if request.kind == ObjectiveKind.MAX_TARGET_LOAD:
            return self.max_target_load(space, request)
        if request.kind == ObjectiveKind.TARGETS_USED:
            return self.targets_used(space, request)
        raise EncodingException(f"{request.kind.value} is not a per-target aggregate")


class IntervalEncoder(Encoder):
    """Unit intervals on the target axis plus cumulative constraints"""
    strategy = EncodingStrategy.INTERVAL

    def add_capacity(self, space, request):
        if not request.rows or not space.num_targets:
            return
        intervals = [space.interval(r) for r in request.rows]
        demands = list(request.demands)

        # Cumulative takes one capacity; pad smaller targets with fixed fillers
        max_capacity = max(request.capacities)
        for t, capacity in enumerate(request.capacities):
            if capacity < max_capacity:
                intervals.append(self.model.NewFixedSizeIntervalVar(
                    t, 1, f'filler_{request.resource}_{t}'))
                demands.append(max_capacity - capacity)

        self.model.AddCumulative(intervals, demands, max_capacity)

    def max_target_load(self, space, request):
        if not request.minimize:
            raise EncodingException('The interval encoding can only minimize the maximum target load')
        peak = self.model.NewIntVar(0, self.bound, request.label)
        if request.rows and space.num_targets:
            intervals = [space.interval(r) for r in request.rows]
            self.model.AddCumulative(intervals, list(request.scores), peak)
        return peak

    def targets_used(self, space, request):
        raise EncodingException('The interval encoding cannot count used targets')


class IndicatorEncoder(Encoder):
    """Indicator literals per (row, target) and linear per-target loads"""
    strategy = EncodingStrategy.INDICATOR

    def _loads(self, space, rows, weights, prefix):
        loads = []
        for t in range(space.num_targets):
            load = self.model.NewIntVar(0, self.bound, f'{prefix}_{t}')
            literals = [space.indicator(r, t) for r in rows]
            self.model.Add(load == cp_model.LinearExpr.WeightedSum(literals, weights))
            loads.append(load)
        return loads

    def add_capacity(self, space, request):
        if not request.rows:
            return
        loads = self._loads(space, request.rows, request.demands, f'load_{request.resource}')
        for load, capacity in zip(loads, request.capacities):
            self.model.Add(load <= capacity)

    def max_target_load(self, space, request):
        peak = self.model.NewIntVar(0, self.bound, request.label)
        if not space.num_targets:
            return peak
        scores = self._loads(space, request.rows, request.scores, f'score_{request.label}')
        self.model.AddMaxEquality(peak, scores)
        return peak

    def targets_used(self, space, request):
        used_count = self.model.NewIntVar(0, min(self.bound, space.num_targets), request.label)
        used = []
        for t in range(space.num_targets):
            flag = self.model.NewBoolVar(f'used_{t}')
            literals = [space.indicator(r, t) for r in request.rows]
            if literals:
                self.model.AddMaxEquality(flag, literals)
            else:
                self.model.Add(flag == 0)
            used.append(flag)
        self.model.Add(used_count == sum(used))
        return used_count


ENCODERS = {
    EncodingStrategy.INTERVAL: IntervalEncoder,
    EncodingStrategy.INDICATOR: IndicatorEncoder,
}
