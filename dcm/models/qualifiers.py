"""
Comprehension IR

A comprehension reads "for each row combination satisfying the qualifiers,
produce the head". Generators bind rows, predicates filter them, group-bys
partition them and heads say what the compiled model must enforce or
optimize. Every node is an immutable value; consumers add behaviour through
QualifierVisitor subclasses instead of modifying the nodes.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple

from dcm.error_handlers.exceptions import UnsupportedQualifierException
from dcm.models.ir_table import IRColumn, IRTable


class Operator(str, Enum):
    """Comparison operators for row predicates"""
    EQ = "=="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    IN = "in"
    NOT_IN = "not in"

    def apply(self, left: Any, right: Any) -> bool:
        """Evaluate ``left <op> right``; comparisons involving NULL are false"""
        if left is None or right is None:
            return False
        if self is Operator.EQ:
            return left == right
        if self is Operator.NE:
            return left != right
        if self is Operator.LT:
            return left < right
        if self is Operator.LE:
            return left <= right
        if self is Operator.GT:
            return left > right
        if self is Operator.GE:
            return left >= right
        if self is Operator.IN:
            return left in right
        return left not in right


class ObjectiveKind(str, Enum):
    """Aggregates that can be optimized"""
    MAX_TARGET_LOAD = "max_target_load"   # max over targets of the per-target sum of a column
    TARGETS_USED = "targets_used"         # targets hosting at least one row
    SATISFIED_ROWS = "satisfied_rows"     # rows meeting the controllable predicates


class Sense(str, Enum):
    MINIMIZE = "minimize"
    MAXIMIZE = "maximize"


class Qualifier:
    """
    Common supertype of all comprehension nodes

    Each concrete variant names the visitor method that handles it in
    ``visit_method``. Variants register themselves in ``Qualifier.variants``
    so exhaustive visitors can be checked when they are defined.
    """
    visit_method: ClassVar[Optional[str]] = None
    variants: ClassVar[Dict[str, type]] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        method = cls.__dict__.get('visit_method')
        if method:
            Qualifier.variants[method] = cls

    def accept_visitor(self, visitor, context=None):
        """Double-dispatch to the visitor method registered for this variant"""
        method = getattr(visitor, self.visit_method, None) if self.visit_method else None
        if method is None:
            raise UnsupportedQualifierException(
                f"{type(visitor).__name__} cannot visit {type(self).__name__}",
                details={'qualifier': type(self).__name__, 'visitor': type(visitor).__name__},
            )
        return method(self, context)


@dataclass(frozen=True)
class TableRowGenerator(Qualifier):
    """Binds a fresh row variable to one row of ``table``"""
    visit_method: ClassVar[str] = 'visit_table_row_generator'

    table: IRTable

    def get_table(self) -> IRTable:
        return self.table

    def get_unique_primary_key_column(self) -> Optional[IRColumn]:
        """
        The primary key column, only when the key has exactly one column.

        Returns None for tables without a key and for composite keys; callers
        must then fall back to composite-key handling.
        """
        primary_key = self.table.get_primary_key()
        if primary_key is None or len(primary_key.primary_key_fields) != 1:
            return None
        return primary_key.primary_key_fields[0]

    def __str__(self):
        return f"TableRowGenerator{{table={self.table.name}}}"


@dataclass(frozen=True)
class RowPredicate(Qualifier):
    """
    Per-row predicate ``column <operator> operand``

    The operand is a literal, a collection for IN/NOT_IN, or another column
    of the same row.
    """
    visit_method: ClassVar[str] = 'visit_row_predicate'

    column: IRColumn
    operator: Operator
    operand: Any

    @property
    def is_controllable(self) -> bool:
        return self.column.is_controllable

    @property
    def operand_column(self) -> Optional[IRColumn]:
        return self.operand if isinstance(self.operand, IRColumn) else None


@dataclass(frozen=True)
class GroupByQualifier(Qualifier):
    """Partitions rows by a column; a controllable column groups by target"""
    visit_method: ClassVar[str] = 'visit_group_by'

    column: IRColumn


@dataclass(frozen=True)
class CheckHead(Qualifier):
    """Every row passing the comprehension's predicates must satisfy ``predicate``"""
    visit_method: ClassVar[str] = 'visit_check_head'

    predicate: RowPredicate


@dataclass(frozen=True)
class CapacityHead(Qualifier):
    """Per target: sum of ``demand_column`` over rows on it <= target's ``capacity_column``"""
    visit_method: ClassVar[str] = 'visit_capacity_head'

    demand_column: IRColumn
    capacity_column: IRColumn
    name: Optional[str] = None

    @property
    def resource(self) -> str:
        return self.name or self.demand_column.name


@dataclass(frozen=True)
class DistinctHead(Qualifier):
    """Rows sharing a group key are placed on pairwise distinct targets"""
    visit_method: ClassVar[str] = 'visit_distinct_head'


@dataclass(frozen=True)
class ObjectiveHead(Qualifier):
    """One weighted objective term"""
    visit_method: ClassVar[str] = 'visit_objective_head'

    kind: ObjectiveKind
    column: Optional[IRColumn] = None
    sense: Sense = Sense.MINIMIZE
    weight: int = 1


@dataclass(frozen=True)
class Comprehension:
    """A head together with the qualifiers it ranges over"""
    head: Qualifier
    qualifiers: Tuple[Qualifier, ...] = field(default_factory=tuple)

    def __post_init__(self):
        # Accept any sequence but store a tuple
        object.__setattr__(self, 'qualifiers', tuple(self.qualifiers))

    def generators(self) -> Tuple[TableRowGenerator, ...]:
        return tuple(q for q in self.qualifiers if isinstance(q, TableRowGenerator))
