"""
Comprehension Lowering
======================

Compiles comprehensions over relational IR into a CP-SAT model.

Each generated table gets one assignment variable per row, bounded by the
number of targets its controllable column references. Predicates on static
columns select rows at compile time; predicates on the controllable column
become indicator literals. Heads then emit:

* CheckHead      -> domain constraints on the assignment variables
* CapacityHead   -> per-target capacity through the selected encoding
* DistinctHead   -> AllDifferent within each static group
* ObjectiveHead  -> bounded aggregate variables feeding a single Minimize

Usage:
    compiler = ModelCompiler.from_config(get_config())
    compiled = compiler.compile(ir_context, comprehensions)
"""
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence, Set

from ortools.sat.python import cp_model

from dcm.constants import DEFAULT_MAX_AGGREGATE_BOUND
from dcm.error_handlers.decorators import handle_errors
from dcm.error_handlers.exceptions import (
    SchemaException,
    UnsupportedQualifierException,
)
from dcm.error_handlers.logging import compile_logger
from dcm.models.ir_context import IRContext
from dcm.models.ir_table import ColumnType, IRColumn, IRTable
from dcm.models.qualifiers import (
    CapacityHead,
    CheckHead,
    Comprehension,
    DistinctHead,
    GroupByQualifier,
    ObjectiveHead,
    ObjectiveKind,
    RowPredicate,
    TableRowGenerator,
)
from dcm.models.visitor import QualifierVisitor, format_comprehension
from dcm.services.assignment_space import AssignmentSpace
from dcm.services.encodings import (
    ENCODERS,
    AggregateRequest,
    CapacityRequest,
    EncodingStrategy,
    select_encoding,
)
from dcm.services.objective import ObjectiveAssembler, effective_minimize
from dcm.services.result_types import CompiledModel, LoadAggregate, TargetDomain
from dcm.services.symmetry import SymmetryBreaker
from dcm.utils.validators import require_bound, require_int, require_non_negative_ints

logger = logging.getLogger(__name__)


class ComprehensionScope:
    """State gathered while visiting the qualifiers of one comprehension"""

    def __init__(self, comprehension: Comprehension):
        self.comprehension = comprehension
        self.in_head = False
        self.generator: Optional[TableRowGenerator] = None
        self.space: Optional[AssignmentSpace] = None
        self.static_predicates: List[RowPredicate] = []
        self.controllable_predicates: List[RowPredicate] = []
        self.group_by: Optional[GroupByQualifier] = None

    @property
    def table(self) -> IRTable:
        return self.generator.table

    def selected_rows(self) -> List[int]:
        """Rows passing every static predicate, in generator order"""
        rows = self.space.rows
        return [r for r in range(len(rows))
                if all(_holds(self.table, p, rows[r]) for p in self.static_predicates)]

    def groups_by_target(self) -> bool:
        return self.group_by is not None and self.group_by.column.is_controllable


def _operand_value(table: IRTable, predicate: RowPredicate, row):
    column = predicate.operand_column
    if column is not None:
        return row[table.column_index(column.name)]
    return predicate.operand


def _compare(predicate: RowPredicate, left, right) -> bool:
    try:
        return predicate.operator.apply(left, right)
    except TypeError:
        raise SchemaException(
            f"Cannot evaluate {predicate.column.qualified_name} {predicate.operator.value} {right!r}: "
            f"{type(left).__name__} and {type(right).__name__} are not comparable",
            details={'column': predicate.column.qualified_name, 'operator': predicate.operator.value,
                     'left_type': type(left).__name__, 'right_type': type(right).__name__},
        )


def _holds(table: IRTable, predicate: RowPredicate, row) -> bool:
    left = row[table.column_index(predicate.column.name)]
    return _compare(predicate, left, _operand_value(table, predicate, row))


class _CompileState:
    """Transient mappings owned by a single compile call"""

    def __init__(self, model: cp_model.CpModel, ir_context: IRContext, bound: Optional[int]):
        self.model = model
        self.ir_context = ir_context
        self.bound = bound
        self.spaces: Dict[str, AssignmentSpace] = {}
        self.referenced: Dict[str, Set[int]] = defaultdict(set)
        self.capacity_requests: List[tuple] = []
        self.aggregate_requests: List[tuple] = []
        self.objective = ObjectiveAssembler(model)
        self.aggregates: Dict[str, Any] = {}
        self.load_aggregates: Dict[str, LoadAggregate] = {}

    def reference(self, column: IRColumn):
        if column is None or column.is_controllable:
            return
        table = self.ir_context.get_table(column.table_name)
        self.referenced[table.name].add(table.column_index(column.name))

    def space_for(self, table: IRTable) -> AssignmentSpace:
        if table.name not in self.spaces:
            controllable = _controllable_column(table)
            targets = _target_domain(self.ir_context, controllable)
            rows = self.ir_context.rows(table.name)
            self.spaces[table.name] = AssignmentSpace(self.model, table, rows, controllable, targets)
            logger.debug(
                f"{table.name}: {len(rows)} assignment variables over "
                f"{len(targets)} targets of {targets.table_name}"
            )
        return self.spaces[table.name]


def _controllable_column(table: IRTable) -> IRColumn:
    controllable = table.controllable_columns
    if len(controllable) != 1:
        raise SchemaException(
            f"Generated table {table.name} must have exactly one controllable column, "
            f"found {len(controllable)}",
            details={'table': table.name, 'controllable': [c.name for c in controllable]},
        )
    column = controllable[0]
    if column.column_type != ColumnType.FOREIGN_KEY or not column.references:
        raise SchemaException(
            f"Controllable column {column.qualified_name} must be a foreign key to the target table",
            details={'column': column.qualified_name},
        )
    return column


def _target_domain(ir_context: IRContext, controllable: IRColumn) -> TargetDomain:
    target_table_name, target_column_name = controllable.references
    target_table = ir_context.get_table(target_table_name)
    position = target_table.column_index(target_column_name)
    identities = tuple(row[position] for row in ir_context.rows(target_table_name))
    if len(set(identities)) != len(identities):
        raise SchemaException(
            f"{target_table_name}.{target_column_name} is referenced by "
            f"{controllable.qualified_name} but is not unique",
            details={'table': target_table_name, 'column': target_column_name},
        )
    return TargetDomain(target_table_name, target_column_name, identities)


class LoweringVisitor(QualifierVisitor, exhaustive=True):
    """Emits CP-SAT constraints for one comprehension at a time"""

    def __init__(self, state: _CompileState):
        self.state = state
        self.model = state.model

    def lower(self, comprehension: Comprehension):
        scope = ComprehensionScope(comprehension)
        for qualifier in comprehension.qualifiers:
            self.visit(qualifier, scope)
        if scope.generator is None:
            raise UnsupportedQualifierException(
                'Comprehension has no TableRowGenerator',
                details={'comprehension': format_comprehension(comprehension)},
            )
        scope.in_head = True
        self.visit(comprehension.head, scope)

    # ------------------------------------------------------------------
    # Body qualifiers
    # ------------------------------------------------------------------

    def visit_table_row_generator(self, qualifier: TableRowGenerator, scope: ComprehensionScope):
        self._require_body(qualifier, scope)
        if scope.generator is not None:
            raise UnsupportedQualifierException(
                f"Joins are not supported: comprehension already ranges over {scope.table.name}",
                details={'tables': [scope.table.name, qualifier.table.name]},
            )
        scope.generator = qualifier
        scope.space = self.state.space_for(qualifier.table)

    def visit_row_predicate(self, qualifier: RowPredicate, scope: ComprehensionScope):
        self._require_body(qualifier, scope)
        self._check_predicate(qualifier, scope)
        if qualifier.is_controllable:
            scope.controllable_predicates.append(qualifier)
        else:
            scope.static_predicates.append(qualifier)

    def visit_group_by(self, qualifier: GroupByQualifier, scope: ComprehensionScope):
        self._require_body(qualifier, scope)
        self._require_generator(qualifier, scope)
        self._require_column(qualifier.column, scope)
        if scope.group_by is not None:
            raise UnsupportedQualifierException('Only one group-by per comprehension is supported')
        scope.group_by = qualifier
        self.state.reference(qualifier.column)

    # ------------------------------------------------------------------
    # Heads
    # ------------------------------------------------------------------

    def visit_check_head(self, qualifier: CheckHead, scope: ComprehensionScope):
        self._require_head(qualifier, scope)
        if scope.group_by is not None:
            raise UnsupportedQualifierException('A check applies per row and cannot be grouped')
        predicate = qualifier.predicate
        self._check_predicate(predicate, scope)

        space = scope.space
        rows = space.rows
        violations = 0
        for r in scope.selected_rows():
            guards = [space.membership(r, self._allowed_targets(p, scope, rows[r]))
                      for p in scope.controllable_predicates]
            if predicate.is_controllable:
                space.restrict(r, self._allowed_targets(predicate, scope, rows[r]), enforce_if=guards)
            elif not _holds(scope.table, predicate, rows[r]):
                # Static check fails: the guards must not all hold
                violations += 1
                if guards:
                    self.model.AddBoolOr([g.Not() for g in guards])
                else:
                    space.restrict(r, frozenset())

        if violations and not scope.controllable_predicates:
            compile_logger.phase_warning(
                'lowering',
                f"{violations} rows of {scope.table.name} violate "
                f"'{format_comprehension(scope.comprehension)}' unconditionally; model is infeasible",
            )

    def visit_capacity_head(self, qualifier: CapacityHead, scope: ComprehensionScope):
        self._require_head(qualifier, scope)
        self._require_target_grouping(qualifier, scope)
        self._require_column(qualifier.demand_column, scope)
        space = scope.space
        target_table = self.state.ir_context.get_table(space.targets.table_name)
        if not target_table.has_column(qualifier.capacity_column):
            raise SchemaException(
                f"Capacity column {qualifier.capacity_column.qualified_name} must belong to "
                f"target table {target_table.name}",
                details={'column': qualifier.capacity_column.qualified_name},
            )
        self.state.reference(qualifier.demand_column)

        rows = scope.selected_rows()
        demand_position = scope.table.column_index(qualifier.demand_column.name)
        demands = require_non_negative_ints(
            (space.rows[r][demand_position] for r in rows), qualifier.demand_column.qualified_name)
        capacity_position = target_table.column_index(qualifier.capacity_column.name)
        capacities = require_non_negative_ints(
            (row[capacity_position] for row in self.state.ir_context.rows(target_table.name)),
            qualifier.capacity_column.qualified_name)
        # Per-target load variables are bounded like any other aggregate
        require_bound(self.state.bound, sum(demands), f'load({qualifier.resource})')

        request = CapacityRequest(qualifier.resource, rows, demands, capacities)
        self.state.capacity_requests.append((space, request))

    def visit_distinct_head(self, qualifier: DistinctHead, scope: ComprehensionScope):
        self._require_head(qualifier, scope)
        self._require_no_controllable_filter(qualifier, scope)
        if scope.group_by is None or scope.group_by.column.is_controllable:
            raise UnsupportedQualifierException(
                'DistinctHead needs a group-by on a static column',
                details={'comprehension': format_comprehension(scope.comprehension)},
            )
        space = scope.space
        position = scope.table.column_index(scope.group_by.column.name)
        groups = defaultdict(list)
        for r in scope.selected_rows():
            key = space.rows[r][position]
            # NULL keys form no group
            if key is not None:
                groups[key].append(r)
        for members in groups.values():
            if len(members) > 1:
                self.model.AddAllDifferent([space.variables[r] for r in members])

    def visit_objective_head(self, qualifier: ObjectiveHead, scope: ComprehensionScope):
        self._require_head(qualifier, scope)
        weight = require_int(qualifier.weight, 'objective weight')
        space = scope.space
        label = self._objective_label(qualifier, scope)

        if qualifier.kind == ObjectiveKind.SATISFIED_ROWS:
            if scope.group_by is not None:
                raise UnsupportedQualifierException('SATISFIED_ROWS counts rows and cannot be grouped')
            if not scope.controllable_predicates:
                raise UnsupportedQualifierException(
                    'SATISFIED_ROWS needs at least one predicate on the controllable column'
                )
            rows = scope.selected_rows()
            bound = require_bound(self.state.bound, len(rows), label)
            literals = []
            for r in rows:
                members = [space.membership(r, self._allowed_targets(p, scope, space.rows[r]))
                           for p in scope.controllable_predicates]
                literals.append(space.all_of(r, members))
            satisfied = self.model.NewIntVar(0, bound, label)
            self.model.Add(satisfied == sum(literals))
            self.state.aggregates[label] = satisfied
            self.state.objective.add_term(label, satisfied, weight, qualifier.sense)
            return

        self._require_target_grouping(qualifier, scope)
        rows = scope.selected_rows()
        if qualifier.kind == ObjectiveKind.MAX_TARGET_LOAD:
            if qualifier.column is None:
                raise SchemaException('MAX_TARGET_LOAD needs a score column')
            self._require_column(qualifier.column, scope)
            self.state.reference(qualifier.column)
            position = scope.table.column_index(qualifier.column.name)
            scores = require_non_negative_ints(
                (space.rows[r][position] for r in rows), qualifier.column.qualified_name)
            require_bound(self.state.bound, sum(scores), label)
        else:
            scores = [1] * len(rows)
            require_bound(self.state.bound, space.num_targets, label)

        request = AggregateRequest(label, qualifier.kind, rows, scores,
                                   minimize=effective_minimize(weight, qualifier.sense))
        self.state.aggregate_requests.append((space, request, weight, qualifier.sense))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _allowed_targets(self, predicate: RowPredicate, scope: ComprehensionScope, row) -> frozenset:
        """Target indices whose identity satisfies a controllable predicate for ``row``"""
        operand = _operand_value(scope.table, predicate, row)
        return scope.space.targets.indices_where(
            lambda identity: _compare(predicate, identity, operand))

    def _objective_label(self, qualifier: ObjectiveHead, scope: ComprehensionScope) -> str:
        base = qualifier.kind.value
        if qualifier.column is not None:
            base += f'({qualifier.column.qualified_name})'
        else:
            base += f'({scope.table.name})'
        label, n = base, 1
        while label in self.state.aggregates or any(
                req[1].label == label for req in self.state.aggregate_requests):
            n += 1
            label = f'{base}#{n}'
        return label

    def _check_predicate(self, predicate: RowPredicate, scope: ComprehensionScope):
        self._require_generator(predicate, scope)
        self._require_column(predicate.column, scope)
        operand_column = predicate.operand_column
        if operand_column is not None:
            self._require_column(operand_column, scope)
            if operand_column.is_controllable:
                raise UnsupportedQualifierException(
                    f"Predicate operand {operand_column.qualified_name} cannot be controllable"
                )
            self.state.reference(operand_column)
        self.state.reference(predicate.column)

    def _require_column(self, column: IRColumn, scope: ComprehensionScope):
        if not scope.table.has_column(column):
            raise SchemaException(
                f"Column {column.qualified_name} does not belong to generated table {scope.table.name}",
                details={'column': column.qualified_name, 'table': scope.table.name},
            )

    @staticmethod
    def _require_generator(qualifier, scope: ComprehensionScope):
        if scope.generator is None:
            raise UnsupportedQualifierException(
                f"{type(qualifier).__name__} must follow a TableRowGenerator"
            )

    @staticmethod
    def _require_body(qualifier, scope: ComprehensionScope):
        if scope.in_head:
            raise UnsupportedQualifierException(
                f"{type(qualifier).__name__} cannot be used as a comprehension head"
            )

    @staticmethod
    def _require_head(qualifier, scope: ComprehensionScope):
        if not scope.in_head:
            raise UnsupportedQualifierException(
                f"{type(qualifier).__name__} can only be used as a comprehension head"
            )

    def _require_no_controllable_filter(self, qualifier, scope: ComprehensionScope):
        if scope.controllable_predicates:
            raise UnsupportedQualifierException(
                f"{type(qualifier).__name__} cannot be filtered on the controllable column"
            )

    def _require_target_grouping(self, qualifier, scope: ComprehensionScope):
        self._require_no_controllable_filter(qualifier, scope)
        if not scope.groups_by_target():
            raise UnsupportedQualifierException(
                f"{type(qualifier).__name__} needs a group-by on the controllable column",
                details={'comprehension': format_comprehension(scope.comprehension)},
            )


class ModelCompiler:
    """
    Lowers comprehensions into a CP-SAT model.

    One compile builds a fresh model; nothing is shared between compiles, so
    separate compiles can run concurrently.
    """

    def __init__(self, encoding='auto', symmetry_breaking: bool = True,
                 max_aggregate_bound: Optional[int] = DEFAULT_MAX_AGGREGATE_BOUND,
                 hint_current_assignment: bool = False):
        self.encoding = EncodingStrategy.parse(encoding)
        self.symmetry_breaking = symmetry_breaking
        self.max_aggregate_bound = max_aggregate_bound
        self.hint_current_assignment = hint_current_assignment

    @classmethod
    def from_config(cls, config) -> 'ModelCompiler':
        return cls(
            encoding=config.ENCODING,
            symmetry_breaking=config.SYMMETRY_BREAKING,
            max_aggregate_bound=config.MAX_AGGREGATE_BOUND,
            hint_current_assignment=config.HINT_CURRENT_ASSIGNMENT,
        )

    @handle_errors
    def compile(self, ir_context: IRContext, comprehensions: Sequence[Comprehension]) -> CompiledModel:
        """
        Compile comprehensions against the tables of ``ir_context``.

        Args:
            ir_context: Tables and rows visible to this compile
            comprehensions: Policy comprehensions; all of those over one table
                share its assignment variables

        Returns:
            CompiledModel: Native model plus variable bindings for projection

        Raises:
            UnsupportedQualifierException: A qualifier cannot be lowered
            UnboundedDomainException: An aggregate lacks a sufficient finite bound
            SchemaException: Unknown columns or non-integer coefficients
            EncodingException: The forced encoding cannot express a head
        """
        compile_logger.phase_started('compile', f"{len(comprehensions)} comprehensions")
        model = cp_model.CpModel()
        state = _CompileState(model, ir_context, self.max_aggregate_bound)
        visitor = LoweringVisitor(state)

        for comprehension in comprehensions:
            logger.debug(f"Lowering {format_comprehension(comprehension)}")
            visitor.lower(comprehension)

        encodings = self._encode(state)
        has_objective = state.objective.apply()

        symmetry_constraints = 0
        if self.symmetry_breaking:
            breaker = SymmetryBreaker(model)
            for name, space in state.spaces.items():
                symmetry_constraints += breaker.break_row_symmetry(space, state.referenced[name])

        hints = 0
        if self.hint_current_assignment:
            for space in state.spaces.values():
                hints += space.hint_current_assignment()

        proto = model.Proto()
        compiled = CompiledModel(
            model=model,
            bindings={name: list(space.bindings) for name, space in state.spaces.items()},
            target_domains={name: space.targets for name, space in state.spaces.items()},
            aggregates=dict(state.aggregates),
            load_aggregates=dict(state.load_aggregates),
            encodings=encodings,
            has_objective=has_objective,
            stats={
                'variables': len(proto.variables),
                'constraints': len(proto.constraints),
                'assignment_variables': sum(s.num_rows for s in state.spaces.values()),
                'indicators': sum(s.num_indicators for s in state.spaces.values()),
                'intervals': sum(s.num_intervals for s in state.spaces.values()),
                'symmetry_constraints': symmetry_constraints,
                'hints': hints,
            },
        )
        compile_logger.phase_completed('compile', compiled.stats)
        return compiled

    def _encode(self, state: _CompileState) -> Dict[str, str]:
        """Emit capacity constraints and aggregates through the selected encoders"""
        chosen = {}
        for space, request in state.capacity_requests:
            strategy = select_encoding(self.encoding, len(request.rows), space.num_targets)
            ENCODERS[strategy](state.model, state.bound).add_capacity(space, request)
            chosen[f'capacity:{space.table.name}.{request.resource}'] = strategy.value

        for space, request, weight, sense in state.aggregate_requests:
            strategy = select_encoding(self.encoding, len(request.rows), space.num_targets,
                                       request.needs_target_aggregates)
            aggregate = ENCODERS[strategy](state.model, state.bound).aggregate(space, request)
            state.aggregates[request.label] = aggregate
            if request.kind == ObjectiveKind.MAX_TARGET_LOAD:
                state.load_aggregates[request.label] = LoadAggregate(
                    space.table.name, tuple(request.rows), tuple(request.scores))
            state.objective.add_term(request.label, aggregate, weight, sense)
            chosen[f'objective:{request.label}'] = strategy.value

        for label, strategy in chosen.items():
            logger.debug(f"Encoding for {label}: {strategy}")
        return chosen
