"""
Placement Service
=================

Compile -> solve -> project in one call, for callers that want a placement
rather than the individual phases.

Usage:
    service = PlacementService(get_config())
    outcome = service.run(ir_context, comprehensions)
    if outcome.succeeded:
        mapping = outcome.placement.targets_by_identity('tasks')
"""
import logging
from datetime import datetime
from typing import Optional, Sequence

from dcm.config import get_config
from dcm.error_handlers.logging import compile_logger
from dcm.models.ir_context import IRContext
from dcm.models.qualifiers import Comprehension
from dcm.services.lowering import ModelCompiler
from dcm.services.result_projection import project_assignments
from dcm.services.result_types import PlacementOutcome, SolveStatus
from dcm.services.solver_driver import SolverDriver

logger = logging.getLogger(__name__)


class PlacementService:
    """Runs the whole pipeline with settings from one Config class"""

    def __init__(self, config=None):
        self.config = config or get_config()
        self.compiler = ModelCompiler.from_config(self.config)
        self.driver = SolverDriver.from_config(self.config)

    def run(self, ir_context: IRContext, comprehensions: Sequence[Comprehension],
            deadline: Optional[datetime] = None) -> PlacementOutcome:
        """
        Place the rows of every generated table.

        Args:
            ir_context: Tables and rows
            comprehensions: Policy comprehensions
            deadline: Optional wall-clock deadline for the solve

        Returns:
            PlacementOutcome: The placement when one was found, otherwise the
                status and an operator-facing message

        Raises:
            CompileException: If the comprehensions cannot be compiled
            SolverException: If the solver rejects the model
        """
        try:
            compiled = self.compiler.compile(ir_context, comprehensions)
        except Exception as e:
            compile_logger.phase_failed('compile', e, {'comprehensions': len(comprehensions)})
            raise

        compile_logger.phase_started('solve')
        result = self.driver.solve(compiled, deadline=deadline)
        compile_logger.phase_completed('solve', {
            'status': result.status_name,
            'objective': result.objective_value,
            'wall_time': round(result.wall_time, 3),
        })

        if result.status == SolveStatus.INFEASIBLE:
            return PlacementOutcome(
                status=result.status,
                placement=None,
                message='No placement satisfies every constraint. Constraints may be too restrictive.',
                solve_result=result,
                stats=compiled.stats,
            )
        if not result.status.has_solution:
            return PlacementOutcome(
                status=result.status,
                placement=None,
                message=f'Solver did not find a placement within its budget (status: {result.status_name})',
                solve_result=result,
                stats=compiled.stats,
            )

        placement = project_assignments(compiled, result)
        quality = 'optimal' if result.status == SolveStatus.OPTIMAL else 'feasible'
        message = f'Placed {len(placement.assignments)} rows ({quality})'
        logger.info(message)
        return PlacementOutcome(
            status=result.status,
            placement=placement,
            message=message,
            solve_result=result,
            stats=compiled.stats,
        )
