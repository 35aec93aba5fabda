"""
Assignment variables of one generated table

Every row of a generated table gets one integer variable naming its target.
Indicator literals and unit intervals derived from those variables are
created lazily and cached here so predicates and encodings share them.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ortools.sat.python import cp_model

from dcm.models.ir_table import IRColumn, IRTable, row_identity
from dcm.services.result_types import TargetDomain, VariableBinding

logger = logging.getLogger(__name__)


class AssignmentSpace:
    """
    Decision variables for the rows of ``table``

    Variable ``x[r]`` ranges over ``[0, num_targets - 1]``. Indicators are
    linked to ``x[r]`` in both directions, so exactly one indicator per row is
    true in every solution without an explicit exactly-one constraint.
    """

    def __init__(self, model: cp_model.CpModel, table: IRTable, rows: Sequence[Tuple[Any, ...]],
                 controllable: IRColumn, targets: TargetDomain):
        self.model = model
        self.table = table
        self.rows = rows
        self.controllable = controllable
        self.targets = targets
        self.variables: List[Any] = []
        self.bindings: List[VariableBinding] = []
        self._indicators: Dict[Tuple[int, int], Any] = {}
        self._memberships: Dict[Tuple[int, frozenset], Any] = {}
        self._intervals: Dict[int, Any] = {}
        self._all_targets = frozenset(range(len(targets)))

        upper = max(len(targets) - 1, 0)
        for r, row in enumerate(rows):
            identity = row_identity(table, row)
            var = model.NewIntVar(0, upper, f'{table.name}[{identity}].{controllable.name}')
            self.variables.append(var)
            self.bindings.append(VariableBinding(table.name, r, identity, var))

        if rows and not len(targets):
            logger.warning(
                f"{table.name}: {len(rows)} rows but no targets in {targets.table_name}; "
                f"the model is infeasible"
            )
            for var in self.variables:
                model.Add(var < 0)

    @property
    def num_rows(self) -> int:
        return len(self.rows)

    @property
    def num_targets(self) -> int:
        return len(self.targets)

    @property
    def all_targets(self) -> frozenset:
        return self._all_targets

    def indicator(self, r: int, t: int):
        """Literal for "row r is assigned to target t"."""
        key = (r, t)
        if key not in self._indicators:
            var = self.variables[r]
            b = self.model.NewBoolVar(f'{self.table.name}_{r}_on_{t}')
            self.model.Add(var == t).OnlyEnforceIf(b)
            self.model.Add(var != t).OnlyEnforceIf(b.Not())
            self._indicators[key] = b
        return self._indicators[key]

    def membership(self, r: int, allowed: frozenset):
        """Literal for "row r is assigned to one of ``allowed``"."""
        if len(allowed) == 1:
            return self.indicator(r, next(iter(allowed)))
        key = (r, allowed)
        if key not in self._memberships:
            var = self.variables[r]
            b = self.model.NewBoolVar(f'{self.table.name}_{r}_in_{len(self._memberships)}')
            complement = self._all_targets - allowed
            if not allowed:
                self.model.Add(b == 0)
            elif not complement:
                self.model.Add(b == 1)
            else:
                self.model.AddLinearExpressionInDomain(
                    var, cp_model.Domain.FromValues(sorted(allowed))).OnlyEnforceIf(b)
                self.model.AddLinearExpressionInDomain(
                    var, cp_model.Domain.FromValues(sorted(complement))).OnlyEnforceIf(b.Not())
            self._memberships[key] = b
        return self._memberships[key]

    def all_of(self, r: int, literals: Sequence[Any]):
        """Literal equivalent to the conjunction of ``literals``."""
        if len(literals) == 1:
            return literals[0]
        b = self.model.NewBoolVar(f'{self.table.name}_{r}_all')
        self.model.AddBoolAnd(list(literals)).OnlyEnforceIf(b)
        self.model.AddBoolOr([lit.Not() for lit in literals]).OnlyEnforceIf(b.Not())
        return b

    def restrict(self, r: int, allowed: frozenset, enforce_if: Optional[Sequence[Any]] = None):
        """
        Constrain row r to ``allowed`` targets, optionally only when every
        literal of ``enforce_if`` holds.
        """
        var = self.variables[r]
        if allowed >= self._all_targets:
            return
        if not allowed:
            ct = self.model.Add(var < 0)
        else:
            ct = self.model.AddLinearExpressionInDomain(var, cp_model.Domain.FromValues(sorted(allowed)))
        if enforce_if:
            ct.OnlyEnforceIf(list(enforce_if))

    def interval(self, r: int):
        """Unit interval ``[x[r], x[r] + 1)`` on the target axis."""
        if r not in self._intervals:
            var = self.variables[r]
            end = self.model.NewIntVar(1, max(self.num_targets, 1), f'{self.table.name}_{r}_end')
            self._intervals[r] = self.model.NewIntervalVar(var, 1, end, f'{self.table.name}_{r}_interval')
        return self._intervals[r]

    def hint_current_assignment(self) -> int:
        """Hint each row's current target, when it has one; returns hints added"""
        position = self.table.column_index(self.controllable.name)
        hinted = 0
        for r, row in enumerate(self.rows):
            current = row[position]
            if current is None:
                continue
            t = self.targets.index_of(current)
            if t is not None:
                self.model.AddHint(self.variables[r], t)
                hinted += 1
        return hinted

    @property
    def num_indicators(self) -> int:
        return len(self._indicators)

    @property
    def num_intervals(self) -> int:
        return len(self._intervals)
