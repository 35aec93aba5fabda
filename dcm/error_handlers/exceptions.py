"""
Custom exception hierarchy for the placement compiler

Compile-time failures are raised before any solver call and indicate a
policy or IR authoring defect; they are never retried automatically.
Solver verdicts (INFEASIBLE, UNKNOWN) are not exceptions, they are returned
as data in a SolveResult.

Usage:
    from dcm.error_handlers.exceptions import SchemaException

    def get_column(table, name):
        if name not in table.column_names:
            raise SchemaException(f'Unknown column {name}', details={'table': table.name})

Exception Hierarchy:
    DcmException (base)
    ├── CompileException
    │   ├── UnsupportedQualifierException
    │   ├── UnboundedDomainException
    │   ├── PrimaryKeyException
    │   ├── SchemaException
    │   └── EncodingException
    ├── ProjectionMismatchException
    ├── SolverException
    │   └── SolverBusyException
    └── ConfigurationException
"""
from typing import Dict, Any, Optional


class DcmException(Exception):
    """
    Base exception for all compiler and solver errors

    Attributes:
        error_type: String identifier for the error type
        message: Human-readable error message
        details: Additional context about the error
    """
    error_type = 'DcmError'

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize exception

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to a JSON-serializable dictionary

        Returns:
            Dictionary suitable for an operator-facing report
        """
        result = {
            'error': self.error_type,
            'message': self.message,
        }
        if self.details:
            result.update(self.details)
        return result

    def __str__(self) -> str:
        return f"{self.error_type}: {self.message}"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}('{self.message}')>"


class CompileException(DcmException):
    """Raised while lowering a comprehension, before any solver call."""
    error_type = 'CompileError'


class UnsupportedQualifierException(CompileException):
    """
    A qualifier has no registered lowering

    Example:
        >>> qualifier.accept_visitor(visitor, context)
        UnsupportedQualifierError: LoweringVisitor cannot visit MyQualifier
    """
    error_type = 'UnsupportedQualifier'


class UnboundedDomainException(CompileException):
    """
    A variable would need an unbounded range

    The solver requires finite bounds on every integer variable, so aggregate
    variables must be created with an explicit upper bound.
    """
    error_type = 'UnboundedDomain'


class PrimaryKeyException(CompileException):
    """Malformed primary key declaration or usage."""
    error_type = 'PrimaryKeyError'


class SchemaException(CompileException):
    """Unknown tables or columns, or column values of the wrong kind."""
    error_type = 'SchemaError'


class EncodingException(CompileException):
    """The requested encoding cannot express the compiled comprehensions."""
    error_type = 'EncodingError'


class ProjectionMismatchException(DcmException):
    """
    Solved values were requested that the solver never produced

    Raised when projecting a result whose status is neither OPTIMAL nor
    FEASIBLE, or when a tracked variable has no recorded value. Callers must
    check the status before projecting.
    """
    error_type = 'ProjectionMismatch'


class SolverException(DcmException):
    """The solver rejected the model."""
    error_type = 'SolverError'


class SolverBusyException(SolverException):
    """A compiled model is already being solved from another call site."""
    error_type = 'SolverBusy'


class ConfigurationException(DcmException):
    """
    Configuration errors

    Example:
        >>> if config.SOLVER_NUM_WORKERS < 1:
        ...     raise ConfigurationException('DCM_SOLVER_NUM_WORKERS must be >= 1')
    """
    error_type = 'ConfigurationError'
