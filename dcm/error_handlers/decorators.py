"""
Error handling decorators

Provides decorators for consistent error logging around compiler entry points.
"""
import logging
from functools import wraps

from .exceptions import DcmException
from .logging import new_error_id


def handle_errors(f):
    """
    Error logging decorator for compile/solve entry points

    Provides:
    - Structured warning logs for DcmException subclasses
    - Error IDs and full tracebacks for unexpected errors
    - Unchanged propagation: the exception is always re-raised

    Usage:
        @handle_errors
        def compile(self, ir_context, comprehensions):
            if not comprehensions:
                raise CompileException('Nothing to compile')

    Args:
        f: Function to decorate

    Returns:
        Decorated function with error logging
    """
    logger = logging.getLogger(f.__module__)

    @wraps(f)
    def decorated(*args, **kwargs):
        try:
            return f(*args, **kwargs)

        except DcmException as e:
            # Known failures, already described by the exception
            logger.warning(
                f"{e.error_type} in {f.__name__}: {e.message}",
                extra={'details': e.details} if e.details else {}
            )
            raise

        except Exception as e:
            error_id = new_error_id()
            logger.error(
                f"Unexpected error [{error_id}] in {f.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    return decorated
