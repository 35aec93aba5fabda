"""
Compiler, solver and projection services
"""
from .result_types import (
    SolveStatus,
    TargetDomain,
    VariableBinding,
    LoadAggregate,
    CompiledModel,
    SolveResult,
    Assignment,
    PlacementResult,
    PlacementOutcome,
)
from .encodings import EncodingStrategy, select_encoding
from .lowering import LoweringVisitor, ModelCompiler
from .solver_driver import SolverDriver
from .result_projection import project_assignments, target_loads
from .placement import PlacementService

__all__ = [
    'SolveStatus',
    'TargetDomain',
    'VariableBinding',
    'LoadAggregate',
    'CompiledModel',
    'SolveResult',
    'Assignment',
    'PlacementResult',
    'PlacementOutcome',
    'EncodingStrategy',
    'select_encoding',
    'LoweringVisitor',
    'ModelCompiler',
    'SolverDriver',
    'project_assignments',
    'target_loads',
    'PlacementService',
]
