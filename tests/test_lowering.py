"""
Tests for lowering comprehensions into CP-SAT models.

Covers compile-time validation (errors raised before any solve) and the
shape of the emitted model.
"""
import pytest

from dcm.error_handlers.exceptions import (
    EncodingException,
    PrimaryKeyException,
    SchemaException,
    UnboundedDomainException,
    UnsupportedQualifierException,
)
from dcm.models import (
    CapacityHead,
    CheckHead,
    Comprehension,
    DistinctHead,
    GroupByQualifier,
    IRContext,
    IRTable,
    ObjectiveHead,
    ObjectiveKind,
    Operator,
    RowPredicate,
    Sense,
    TableRowGenerator,
    foreign_key_column,
    integer_column,
)
from dcm.services import ModelCompiler


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _capacity(tasks, nodes):
    return Comprehension(
        CapacityHead(tasks.get_column('cpu'), nodes.get_column('cpu_capacity')),
        [TableRowGenerator(tasks), GroupByQualifier(tasks.get_column('controllable__node'))],
    )


def _objective(tasks, kind, column=None, sense=Sense.MINIMIZE, weight=1):
    return Comprehension(
        ObjectiveHead(kind, column=column, sense=sense, weight=weight),
        [TableRowGenerator(tasks), GroupByQualifier(tasks.get_column('controllable__node'))],
    )


# ---------------------------------------------------------------------------
# Qualifier placement
# ---------------------------------------------------------------------------

class TestQualifierValidation:
    """Qualifiers in the wrong position are rejected."""

    def test_missing_generator(self, make_cluster, compiler):
        context, tasks, _ = make_cluster([1], [1])
        comprehension = Comprehension(DistinctHead(), [])
        with pytest.raises(UnsupportedQualifierException):
            compiler.compile(context, [comprehension])

    def test_predicate_before_generator(self, make_cluster, compiler):
        context, tasks, _ = make_cluster([1], [1])
        comprehension = Comprehension(
            CheckHead(RowPredicate(tasks.get_column('cpu'), Operator.GE, 0)),
            [RowPredicate(tasks.get_column('cpu'), Operator.GT, 0), TableRowGenerator(tasks)],
        )
        with pytest.raises(UnsupportedQualifierException):
            compiler.compile(context, [comprehension])

    def test_second_generator_is_a_join(self, make_cluster, compiler):
        context, tasks, nodes = make_cluster([1], [1])
        comprehension = Comprehension(
            CheckHead(RowPredicate(tasks.get_column('cpu'), Operator.GE, 0)),
            [TableRowGenerator(tasks), TableRowGenerator(nodes)],
        )
        with pytest.raises(UnsupportedQualifierException):
            compiler.compile(context, [comprehension])

    def test_head_in_body(self, make_cluster, compiler):
        context, tasks, _ = make_cluster([1], [1])
        comprehension = Comprehension(DistinctHead(), [TableRowGenerator(tasks), DistinctHead()])
        with pytest.raises(UnsupportedQualifierException):
            compiler.compile(context, [comprehension])

    def test_body_qualifier_as_head(self, make_cluster, compiler):
        context, tasks, _ = make_cluster([1], [1])
        comprehension = Comprehension(GroupByQualifier(tasks.get_column('app')), [TableRowGenerator(tasks)])
        with pytest.raises(UnsupportedQualifierException):
            compiler.compile(context, [comprehension])

    def test_capacity_needs_target_grouping(self, make_cluster, compiler):
        context, tasks, nodes = make_cluster([1], [1])
        comprehension = Comprehension(
            CapacityHead(tasks.get_column('cpu'), nodes.get_column('cpu_capacity')),
            [TableRowGenerator(tasks), GroupByQualifier(tasks.get_column('app'))],
        )
        with pytest.raises(UnsupportedQualifierException):
            compiler.compile(context, [comprehension])

    def test_distinct_needs_static_grouping(self, make_cluster, compiler):
        context, tasks, _ = make_cluster([1], [1])
        comprehension = Comprehension(
            DistinctHead(),
            [TableRowGenerator(tasks), GroupByQualifier(tasks.get_column('controllable__node'))],
        )
        with pytest.raises(UnsupportedQualifierException):
            compiler.compile(context, [comprehension])

    def test_satisfied_rows_needs_controllable_predicate(self, make_cluster, compiler):
        context, tasks, _ = make_cluster([1], [1])
        comprehension = Comprehension(
            ObjectiveHead(ObjectiveKind.SATISFIED_ROWS, sense=Sense.MAXIMIZE),
            [TableRowGenerator(tasks)],
        )
        with pytest.raises(UnsupportedQualifierException):
            compiler.compile(context, [comprehension])


# ---------------------------------------------------------------------------
# Schema validation
# ---------------------------------------------------------------------------

class TestSchemaValidation:
    """Columns and values that cannot become solver coefficients."""

    def test_column_of_other_table(self, make_cluster, compiler):
        context, tasks, nodes = make_cluster([1], [1])
        comprehension = Comprehension(
            CheckHead(RowPredicate(nodes.get_column('zone'), Operator.EQ, 'zone-a')),
            [TableRowGenerator(tasks)],
        )
        with pytest.raises(SchemaException):
            compiler.compile(context, [comprehension])

    @pytest.mark.parametrize('column', ['cpu', 'controllable__node'])
    def test_incomparable_operand_in_check(self, make_cluster, compiler, column):
        context, tasks, nodes = make_cluster([1], [1])
        comprehension = Comprehension(
            CheckHead(RowPredicate(tasks.get_column(column), Operator.LT, 'x')),
            [TableRowGenerator(tasks)],
        )
        with pytest.raises(SchemaException) as exc:
            compiler.compile(context, [comprehension])
        assert exc.value.details['column'] == f'tasks.{column}'
        assert exc.value.details['operator'] == Operator.LT.value
        assert exc.value.details['left_type'] == 'int'
        assert exc.value.details['right_type'] == 'str'

    def test_incomparable_operand_in_filter(self, make_cluster, compiler):
        context, tasks, nodes = make_cluster([1, 2], [4])
        comprehension = Comprehension(
            CapacityHead(tasks.get_column('cpu'), nodes.get_column('cpu_capacity')),
            [TableRowGenerator(tasks),
             RowPredicate(tasks.get_column('app'), Operator.GE, 3),
             GroupByQualifier(tasks.get_column('controllable__node'))],
        )
        with pytest.raises(SchemaException):
            compiler.compile(context, [comprehension])

    def test_capacity_column_must_belong_to_targets(self, make_cluster, compiler):
        context, tasks, _ = make_cluster([1], [1])
        comprehension = Comprehension(
            CapacityHead(tasks.get_column('cpu'), tasks.get_column('cpu')),
            [TableRowGenerator(tasks), GroupByQualifier(tasks.get_column('controllable__node'))],
        )
        with pytest.raises(SchemaException):
            compiler.compile(context, [comprehension])

    def test_non_integer_demand(self, make_cluster, compiler):
        context, tasks, nodes = make_cluster([1.5], [4])
        with pytest.raises(SchemaException):
            compiler.compile(context, [_capacity(tasks, nodes)])

    def test_negative_capacity(self, make_cluster, compiler):
        context, tasks, nodes = make_cluster([1], [-1])
        with pytest.raises(SchemaException):
            compiler.compile(context, [_capacity(tasks, nodes)])

    def test_no_controllable_column(self, compiler):
        hosts = IRTable('hosts', [integer_column('hosts', 'id')], primary_key=['id'])
        context = IRContext().add_table(hosts, [(1,)])
        comprehension = Comprehension(DistinctHead(), [TableRowGenerator(hosts)])
        with pytest.raises(SchemaException):
            compiler.compile(context, [comprehension])

    def test_two_controllable_columns(self, compiler):
        hosts = IRTable('hosts', [integer_column('hosts', 'id')], primary_key=['id'])
        vms = IRTable('vms', [
            integer_column('vms', 'id'),
            foreign_key_column('vms', 'controllable__host', 'hosts', 'id'),
            foreign_key_column('vms', 'controllable__backup', 'hosts', 'id'),
        ], primary_key=['id'])
        context = IRContext().add_table(hosts, [(1,)]).add_table(vms, [(1, None, None)])
        comprehension = Comprehension(
            CheckHead(RowPredicate(vms.get_column('id'), Operator.GE, 0)),
            [TableRowGenerator(vms)],
        )
        with pytest.raises(SchemaException):
            compiler.compile(context, [comprehension])

    def test_target_identities_must_be_unique(self, compiler):
        hosts = IRTable('hosts', [integer_column('hosts', 'rack')])
        vms = IRTable('vms', [foreign_key_column('vms', 'controllable__rack', 'hosts', 'rack')])
        context = IRContext().add_table(hosts, [(1,), (1,)]).add_table(vms, [(None,)])
        comprehension = Comprehension(
            CheckHead(RowPredicate(vms.get_column('controllable__rack'), Operator.EQ, 1)),
            [TableRowGenerator(vms)],
        )
        with pytest.raises(SchemaException):
            compiler.compile(context, [comprehension])

    def test_duplicate_key_is_reported_before_compile(self, make_cluster):
        context, tasks, _ = make_cluster([1], [1])
        with pytest.raises(PrimaryKeyException):
            IRContext().add_table(tasks, [(1, 1, 0, 'a', None, None), (1, 2, 0, 'b', None, None)])


# ---------------------------------------------------------------------------
# Aggregate bounds
# ---------------------------------------------------------------------------

class TestAggregateBounds:
    """Aggregates need a finite upper bound."""

    def test_bound_too_small_for_load(self, make_cluster):
        context, tasks, nodes = make_cluster([5, 5], [10])
        compiler = ModelCompiler(max_aggregate_bound=8)
        with pytest.raises(UnboundedDomainException) as exc:
            compiler.compile(context, [_capacity(tasks, nodes)])
        assert exc.value.error_type == 'UnboundedDomain'

    def test_missing_bound(self, make_cluster):
        context, tasks, _ = make_cluster([1, 2], [3, 3])
        compiler = ModelCompiler(max_aggregate_bound=None)
        with pytest.raises(UnboundedDomainException):
            compiler.compile(context, [_objective(tasks, ObjectiveKind.MAX_TARGET_LOAD,
                                                  tasks.get_column('cpu'))])

    def test_max_load_needs_score_column(self, make_cluster, compiler):
        context, tasks, _ = make_cluster([1], [1])
        with pytest.raises(SchemaException):
            compiler.compile(context, [_objective(tasks, ObjectiveKind.MAX_TARGET_LOAD)])


# ---------------------------------------------------------------------------
# Model shape
# ---------------------------------------------------------------------------

class TestModelShape:
    """Bindings, encodings and size counters."""

    def test_one_variable_per_row(self, make_cluster, compiler):
        context, tasks, nodes = make_cluster([2, 2, 2], [4, 4])
        compiled = compiler.compile(context, [_capacity(tasks, nodes)])

        bindings = compiled.bindings['tasks']
        assert [b.row_identity for b in bindings] == [1, 2, 3]
        assert compiled.stats['assignment_variables'] == 3
        assert compiled.target_domains['tasks'].identities == (1, 2)
        assert not compiled.has_objective

    def test_indicator_encoding_size(self, make_cluster):
        context, tasks, nodes = make_cluster([1, 1, 1], [2, 2])
        compiled = ModelCompiler(encoding='indicator').compile(context, [_capacity(tasks, nodes)])
        assert compiled.encodings == {'capacity:tasks.cpu': 'indicator'}
        assert compiled.stats['indicators'] == 6
        assert compiled.stats['intervals'] == 0

    def test_interval_encoding_size(self, make_cluster):
        context, tasks, nodes = make_cluster([1, 1, 1], [2, 2])
        compiled = ModelCompiler(encoding='interval').compile(context, [_capacity(tasks, nodes)])
        assert compiled.encodings == {'capacity:tasks.cpu': 'interval'}
        assert compiled.stats['indicators'] == 0
        assert compiled.stats['intervals'] == 3

    def test_auto_prefers_intervals_for_many_targets(self, make_cluster, compiler):
        context, tasks, nodes = make_cluster([1, 1], [2, 2, 2, 2])
        compiled = compiler.compile(context, [_capacity(tasks, nodes)])
        assert compiled.encodings['capacity:tasks.cpu'] == 'interval'

    def test_auto_prefers_indicators_for_few_targets(self, make_cluster, compiler):
        context, tasks, nodes = make_cluster([1, 1, 1], [2, 2])
        compiled = compiler.compile(context, [_capacity(tasks, nodes)])
        assert compiled.encodings['capacity:tasks.cpu'] == 'indicator'

    def test_targets_used_forces_indicators(self, make_cluster, compiler):
        context, tasks, nodes = make_cluster([1], [2, 2, 2])
        compiled = compiler.compile(context, [_objective(tasks, ObjectiveKind.TARGETS_USED)])
        assert compiled.encodings['objective:targets_used(tasks)'] == 'indicator'
        assert compiled.has_objective
        assert 'targets_used(tasks)' in compiled.aggregates

    def test_forced_interval_cannot_count_targets(self, make_cluster):
        context, tasks, _ = make_cluster([1], [2, 2])
        with pytest.raises(EncodingException):
            ModelCompiler(encoding='interval').compile(
                context, [_objective(tasks, ObjectiveKind.TARGETS_USED)])

    def test_zero_weight_objective_is_dropped(self, make_cluster, compiler):
        context, tasks, _ = make_cluster([1], [2])
        compiled = compiler.compile(
            context, [_objective(tasks, ObjectiveKind.MAX_TARGET_LOAD, tasks.get_column('cpu'), weight=0)])
        assert not compiled.has_objective

    def test_duplicate_objective_labels_are_numbered(self, make_cluster, compiler):
        context, tasks, _ = make_cluster([1], [2])
        compiled = compiler.compile(context, [
            _objective(tasks, ObjectiveKind.TARGETS_USED),
            _objective(tasks, ObjectiveKind.TARGETS_USED, weight=2),
        ])
        assert set(compiled.aggregates) == {'targets_used(tasks)', 'targets_used(tasks)#2'}

    def test_symmetry_constraints_counted(self, make_cluster, compiler):
        context, tasks, nodes = make_cluster([2, 2, 2], [4, 4], apps=['web'] * 3)
        compiled = compiler.compile(context, [_capacity(tasks, nodes)])
        assert compiled.stats['symmetry_constraints'] == 2

    def test_compiles_are_independent(self, make_cluster, compiler):
        context, tasks, nodes = make_cluster([2, 2], [4])
        first = compiler.compile(context, [_capacity(tasks, nodes)])
        second = compiler.compile(context, [_capacity(tasks, nodes)])
        assert first.model is not second.model
        assert first.stats == second.stats
