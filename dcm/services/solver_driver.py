"""
CP-SAT solver driver

Runs one solve of a compiled model and records the values of every tracked
variable, so the native solver object never leaves this module.
"""
import logging
from datetime import datetime
from typing import Optional

from ortools.sat.python import cp_model

from dcm.constants import DEFAULT_NUM_WORKERS, DEFAULT_PROBING_LEVEL, DEFAULT_TIME_LIMIT_SECONDS
from dcm.error_handlers.decorators import handle_errors
from dcm.error_handlers.exceptions import SolverBusyException, SolverException
from dcm.services.result_types import CompiledModel, SolveResult, SolveStatus

logger = logging.getLogger(__name__)
solver_logger = logging.getLogger('dcm.solver')

STATUS_MAP = {
    cp_model.OPTIMAL: SolveStatus.OPTIMAL,
    cp_model.FEASIBLE: SolveStatus.FEASIBLE,
    cp_model.INFEASIBLE: SolveStatus.INFEASIBLE,
    cp_model.UNKNOWN: SolveStatus.UNKNOWN,
}


class SolverDriver:
    """Configures a CpSolver, runs it and maps its terminal status"""

    def __init__(self, num_workers: int = DEFAULT_NUM_WORKERS, log_search_progress: bool = False,
                 probing_level: int = DEFAULT_PROBING_LEVEL,
                 time_limit_seconds: Optional[float] = DEFAULT_TIME_LIMIT_SECONDS):
        self.num_workers = num_workers
        self.log_search_progress = log_search_progress
        self.probing_level = probing_level
        self.time_limit_seconds = time_limit_seconds

    @classmethod
    def from_config(cls, config) -> 'SolverDriver':
        return cls(
            num_workers=config.SOLVER_NUM_WORKERS,
            log_search_progress=config.SOLVER_LOG_SEARCH_PROGRESS,
            probing_level=config.SOLVER_PROBING_LEVEL,
            time_limit_seconds=config.SOLVER_TIME_LIMIT_SECONDS,
        )

    def _time_limit(self, deadline: Optional[datetime]) -> Optional[float]:
        """Seconds available for this solve; the tighter of the limit and the deadline"""
        limit = self.time_limit_seconds
        if deadline is not None:
            remaining = (deadline - datetime.now(deadline.tzinfo)).total_seconds()
            limit = remaining if limit is None else min(limit, remaining)
        return limit

    @handle_errors
    def solve(self, compiled: CompiledModel, deadline: Optional[datetime] = None) -> SolveResult:
        """
        Solve a compiled model.

        Args:
            compiled: Output of ModelCompiler.compile
            deadline: Optional wall-clock deadline for this solve

        Returns:
            SolveResult: Status, objective and recorded values. INFEASIBLE and
                UNKNOWN are results, not errors.

        Raises:
            SolverBusyException: If the same compiled model is being solved elsewhere
            SolverException: If the solver rejects the model as invalid
        """
        if not compiled.lock.acquire(blocking=False):
            raise SolverBusyException('This compiled model is already being solved')
        try:
            return self._solve(compiled, deadline)
        finally:
            compiled.lock.release()

    def _solve(self, compiled: CompiledModel, deadline: Optional[datetime]) -> SolveResult:
        time_limit = self._time_limit(deadline)
        if time_limit is not None and time_limit <= 0:
            logger.warning('Deadline passed before the solve started')
            return SolveResult(SolveStatus.UNKNOWN, 'UNKNOWN')

        solver = cp_model.CpSolver()
        solver.parameters.num_workers = self.num_workers
        solver.parameters.cp_model_probing_level = self.probing_level
        if time_limit is not None:
            solver.parameters.max_time_in_seconds = time_limit
        solver.parameters.log_search_progress = self.log_search_progress
        if self.log_search_progress:
            solver.parameters.log_to_stdout = False
            solver.log_callback = solver_logger.info

        logger.info(
            f"Solving: {compiled.stats.get('variables', '?')} variables, "
            f"{compiled.stats.get('constraints', '?')} constraints "
            f"(time limit: {time_limit}s, workers: {self.num_workers})"
        )
        status = solver.Solve(compiled.model)
        status_name = solver.StatusName(status)

        if status == cp_model.MODEL_INVALID:
            raise SolverException(
                f"Solver rejected the model: {compiled.model.Validate()}",
                details={'status': status_name},
            )

        mapped = STATUS_MAP.get(status, SolveStatus.UNKNOWN)
        result = SolveResult(
            status=mapped,
            status_name=status_name,
            wall_time=solver.WallTime(),
        )

        if mapped.has_solution:
            if compiled.has_objective:
                result.objective_value = int(round(solver.ObjectiveValue()))
                result.best_bound = solver.BestObjectiveBound()
            result.values = {var.Index(): solver.Value(var) for var in compiled.tracked_variables()}
            result.aggregate_values = {
                label: result.values[var.Index()] for label, var in compiled.aggregates.items()
            }
            logger.info(
                f"Solution found ({mapped.value}), objective={result.objective_value}, "
                f"wall time {result.wall_time:.2f}s"
            )
        elif mapped == SolveStatus.INFEASIBLE:
            logger.warning('Model is infeasible; no assignment satisfies every constraint')
        else:
            logger.warning(f"Solver returned status {status_name} without a solution")

        return result
