"""
Declarative placement compiler

Compiles comprehensions over relational tables into CP-SAT models, solves
them and projects the solution back onto rows.
"""
from dcm.config import get_config
from dcm.services import ModelCompiler, PlacementService, SolverDriver, project_assignments

__version__ = '0.1.0'

__all__ = ['get_config', 'ModelCompiler', 'PlacementService', 'SolverDriver', 'project_assignments']
