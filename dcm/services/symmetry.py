"""
Symmetry breaking over interchangeable rows

Two rows are interchangeable when they agree on every column the compiled
comprehensions read (the controllable column excluded): swapping their
targets maps a solution to an equivalent one with the same objective value.
Ordering the assignment variables of each such class in generator order
removes those permutations without removing any objective value.
"""
import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Tuple

from dcm.services.assignment_space import AssignmentSpace

logger = logging.getLogger(__name__)


def interchangeable_classes(rows, positions: Iterable[int]) -> List[List[int]]:
    """
    Group row indices by their values at ``positions``.

    Classes keep generator order, both among classes (by first member) and
    within each class.
    """
    positions = sorted(set(positions))
    classes: Dict[Tuple[Any, ...], List[int]] = OrderedDict()
    for r, row in enumerate(rows):
        signature = tuple(row[p] for p in positions)
        try:
            classes.setdefault(signature, []).append(r)
        except TypeError:
            # Unhashable values: keep the row in a class of its own
            classes[('__row__', r)] = [r]
    return list(classes.values())


class SymmetryBreaker:
    """Adds ``x[i] <= x[j]`` between consecutive members of each row class"""

    def __init__(self, model):
        self.model = model

    def break_row_symmetry(self, space: AssignmentSpace, positions: Iterable[int]) -> int:
        """
        Order interchangeable rows of one generated table.

        Args:
            space: Assignment variables of the table
            positions: Column positions read by the compiled comprehensions

        Returns:
            int: Number of ordering constraints added
        """
        added = 0
        for members in interchangeable_classes(space.rows, positions):
            for first, second in zip(members, members[1:]):
                self.model.Add(space.variables[first] <= space.variables[second])
                added += 1

        logger.debug(f"{space.table.name}: {added} symmetry-breaking constraints")
        return added
