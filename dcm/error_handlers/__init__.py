"""
Unified Error Handling System

Provides the exception hierarchy and logging helpers shared by the compiler,
the solver driver and result projection.

Usage:
    from dcm.error_handlers import handle_errors
    from dcm.error_handlers.exceptions import SchemaException

    @handle_errors
    def compile(...):
        raise SchemaException('Unknown column')
"""
from .exceptions import (
    DcmException,
    CompileException,
    UnsupportedQualifierException,
    UnboundedDomainException,
    PrimaryKeyException,
    SchemaException,
    EncodingException,
    ProjectionMismatchException,
    SolverException,
    SolverBusyException,
    ConfigurationException,
)
from .decorators import handle_errors
from .logging import setup_logging, handle_compile_error, compile_logger


__all__ = [
    # Exceptions
    'DcmException',
    'CompileException',
    'UnsupportedQualifierException',
    'UnboundedDomainException',
    'PrimaryKeyException',
    'SchemaException',
    'EncodingException',
    'ProjectionMismatchException',
    'SolverException',
    'SolverBusyException',
    'ConfigurationException',
    # Decorators / logging
    'handle_errors',
    'setup_logging',
    'handle_compile_error',
    'compile_logger',
]
