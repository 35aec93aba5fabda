"""
Validation utilities for numeric model inputs
Provides reusable checks for values that become solver coefficients or bounds

The solver only supports finite integer domains; floating-point inputs must be
scaled to integers upstream.
"""
from typing import Any, Iterable, List, Optional

from dcm.error_handlers.exceptions import SchemaException, UnboundedDomainException


def require_int(value: Any, what: str) -> int:
    """
    Validate that a value can be used as a solver coefficient.

    Args:
        value: Value read from a table row
        what: Description used in error messages (e.g. 'tasks.cpu')

    Returns:
        int: The value unchanged (booleans are promoted to 0/1)

    Raises:
        SchemaException: If the value is missing or not an integer

    Examples:
        >>> require_int(3, 'tasks.cpu')
        3
        >>> require_int(2.5, 'tasks.cpu')
        SchemaError: tasks.cpu must be an integer, got 2.5
    """
    if isinstance(value, bool):
        return int(value)
    if not isinstance(value, int):
        raise SchemaException(
            f"{what} must be an integer, got {value!r} (scale fractional values upstream)",
            details={'column': what},
        )
    return value


def require_non_negative_ints(values: Iterable[Any], what: str) -> List[int]:
    """
    Validate a column of demands.

    Args:
        values: Values read from table rows
        what: Description used in error messages

    Returns:
        List[int]: Validated integers

    Raises:
        SchemaException: If any value is not an integer or is negative
    """
    result = []
    for value in values:
        number = require_int(value, what)
        if number < 0:
            raise SchemaException(
                f"{what} must be non-negative, got {number}",
                details={'column': what},
            )
        result.append(number)
    return result


def require_bound(bound: Optional[int], needed: int, what: str) -> int:
    """
    Validate the explicit upper bound of an aggregate variable.

    Args:
        bound: Configured upper bound
        needed: Largest value the aggregate can take
        what: Description of the aggregate for error messages

    Returns:
        int: The bound

    Raises:
        UnboundedDomainException: If no positive bound is configured or the
            aggregate could exceed it
    """
    if bound is None or isinstance(bound, bool) or not isinstance(bound, int) or bound <= 0:
        raise UnboundedDomainException(
            f"{what} needs a finite positive upper bound, got {bound!r}",
            details={'aggregate': what},
        )
    if needed > bound:
        raise UnboundedDomainException(
            f"{what} can reach {needed}, above the configured bound {bound}",
            details={'aggregate': what, 'needed': needed, 'bound': bound},
        )
    return bound
