"""
Result projection

Maps solved assignment variables back to rows and target identities.
"""
import logging
from collections import defaultdict
from typing import Any, Dict, Tuple

from dcm.error_handlers.exceptions import ProjectionMismatchException
from dcm.models.ir_context import IRContext
from dcm.services.result_types import (
    Assignment,
    CompiledModel,
    LoadAggregate,
    PlacementResult,
    SolveResult,
)

logger = logging.getLogger(__name__)


def project_assignments(compiled: CompiledModel, result: SolveResult) -> PlacementResult:
    """
    Build the placement described by a solved model.

    Args:
        compiled: The model that was solved
        result: Its SolveResult

    Returns:
        PlacementResult: One Assignment per row of every generated table

    Raises:
        ProjectionMismatchException: If the status is not OPTIMAL or FEASIBLE,
            or a value falls outside the target domain
    """
    if not result.status.has_solution:
        raise ProjectionMismatchException(
            f"Cannot project assignments: solver status is {result.status_name}",
            details={'status': result.status.value},
        )

    assignments = []
    for table_name, bindings in compiled.bindings.items():
        targets = compiled.target_domains[table_name]
        for binding in bindings:
            value = result.value_of(binding.handle)
            if not 0 <= value < len(targets):
                raise ProjectionMismatchException(
                    f"{table_name} row {binding.row_index} was assigned target index {value}, "
                    f"outside the {len(targets)} targets of {targets.table_name}",
                    details={'table': table_name, 'row_index': binding.row_index, 'value': value},
                )
            assignments.append(Assignment(
                table_name=table_name,
                row_index=binding.row_index,
                row_identity=binding.row_identity,
                target_index=value,
                target_identity=targets.identities[value],
            ))

    aggregate_values = dict(result.aggregate_values)
    if compiled.load_aggregates:
        placed = {(a.table_name, a.row_index): a.target_index for a in assignments}
        for label, load in compiled.load_aggregates.items():
            aggregate_values[label] = _max_target_load(load, placed)

    logger.debug(f"Projected {len(assignments)} assignments")
    return PlacementResult(
        status=result.status,
        objective_value=result.objective_value,
        assignments=assignments,
        aggregate_values=aggregate_values,
    )


def _max_target_load(load: LoadAggregate, placed: Dict[Tuple[str, int], int]) -> int:
    """Largest summed score on any one target under the projected placement"""
    loads = defaultdict(int)
    for row, score in zip(load.rows, load.scores):
        loads[placed[(load.table_name, row)]] += score
    return max(loads.values(), default=0)


def target_loads(placement: PlacementResult, ir_context: IRContext,
                 table_name: str, column_name: str) -> Dict[Any, int]:
    """Sum of ``column_name`` over the rows placed on each target, keyed by target identity"""
    table = ir_context.get_table(table_name)
    position = table.column_index(column_name)
    rows = ir_context.rows(table_name)
    loads = defaultdict(int)
    for assignment in placement.for_table(table_name):
        loads[assignment.target_identity] += rows[assignment.row_index][position]
    return dict(loads)
