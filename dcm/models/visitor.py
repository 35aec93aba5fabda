"""
Visitor base class and a formatter for comprehension trees
"""
from typing import Any

from dcm.models.qualifiers import (
    CapacityHead,
    CheckHead,
    Comprehension,
    DistinctHead,
    GroupByQualifier,
    ObjectiveHead,
    Qualifier,
    RowPredicate,
    TableRowGenerator,
)


class QualifierVisitor:
    """
    Base class for comprehension consumers

    Subclasses implement one ``visit_*`` method per qualifier variant they
    handle. Declaring a subclass with ``exhaustive=True`` checks, when the
    class is created, that every registered variant has a visit method::

        class Lowering(QualifierVisitor, exhaustive=True):
            ...

    Visiting a variant without a method raises UnsupportedQualifierException.
    """

    def __init_subclass__(cls, exhaustive: bool = False, **kwargs):
        super().__init_subclass__(**kwargs)
        if exhaustive:
            missing = sorted(
                f"{method} ({variant.__name__})"
                for method, variant in Qualifier.variants.items()
                if not callable(getattr(cls, method, None))
            )
            if missing:
                raise TypeError(
                    f"{cls.__name__} must handle every qualifier variant; missing: {', '.join(missing)}"
                )

    def visit(self, qualifier: Qualifier, context: Any = None) -> Any:
        return qualifier.accept_visitor(self, context)


class QualifierFormatter(QualifierVisitor, exhaustive=True):
    """Renders comprehensions as ``[head | qualifier, ...]`` for logs"""

    def format(self, comprehension: Comprehension) -> str:
        head = self.visit(comprehension.head)
        body = ', '.join(self.visit(q) for q in comprehension.qualifiers)
        return f"[{head} | {body}]"

    def visit_table_row_generator(self, qualifier: TableRowGenerator, context=None) -> str:
        return f"row <- {qualifier.table.name}"

    def visit_row_predicate(self, qualifier: RowPredicate, context=None) -> str:
        operand = qualifier.operand
        if qualifier.operand_column is not None:
            rendered = qualifier.operand_column.qualified_name
        elif isinstance(operand, (list, tuple, set, frozenset)):
            rendered = '(' + ', '.join(repr(v) for v in operand) + ')'
        else:
            rendered = repr(operand)
        return f"{qualifier.column.qualified_name} {qualifier.operator.value} {rendered}"

    def visit_group_by(self, qualifier: GroupByQualifier, context=None) -> str:
        return f"group by {qualifier.column.qualified_name}"

    def visit_check_head(self, qualifier: CheckHead, context=None) -> str:
        return f"check {self.visit(qualifier.predicate)}"

    def visit_capacity_head(self, qualifier: CapacityHead, context=None) -> str:
        return (f"capacity[{qualifier.resource}] sum({qualifier.demand_column.qualified_name})"
                f" <= {qualifier.capacity_column.qualified_name}")

    def visit_distinct_head(self, qualifier: DistinctHead, context=None) -> str:
        return "distinct targets"

    def visit_objective_head(self, qualifier: ObjectiveHead, context=None) -> str:
        column = f"({qualifier.column.qualified_name})" if qualifier.column is not None else ''
        return f"{qualifier.sense.value} {qualifier.weight}*{qualifier.kind.value}{column}"


def format_comprehension(comprehension: Comprehension) -> str:
    return QualifierFormatter().format(comprehension)
