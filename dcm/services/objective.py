"""
Objective assembly

Objective heads contribute weighted terms; terms to maximize are negated so
the model always minimizes one scalar expression.
"""
import logging
from dataclasses import dataclass
from typing import Any, List

from dcm.models.qualifiers import Sense

logger = logging.getLogger(__name__)


@dataclass
class ObjectiveTerm:
    label: str
    expression: Any  # bounded IntVar
    weight: int
    sense: Sense

    @property
    def coefficient(self) -> int:
        return self.weight if self.sense == Sense.MINIMIZE else -self.weight


def effective_minimize(weight: int, sense: Sense) -> bool:
    """Whether a term is effectively minimized once the weight sign is applied"""
    return (weight > 0) == (sense == Sense.MINIMIZE)


class ObjectiveAssembler:
    """Collects terms and installs a single Minimize on the model"""

    def __init__(self, model):
        self.model = model
        self.terms: List[ObjectiveTerm] = []

    def add_term(self, label: str, expression, weight: int = 1, sense: Sense = Sense.MINIMIZE):
        if weight == 0:
            logger.debug(f"Skipping zero-weight objective term {label}")
            return
        self.terms.append(ObjectiveTerm(label, expression, weight, sense))

    def apply(self) -> bool:
        """Install the objective; returns False for a pure feasibility model"""
        if not self.terms:
            return False
        self.model.Minimize(sum(t.coefficient * t.expression for t in self.terms))
        logger.debug(
            "Objective: " + ' + '.join(f"{t.coefficient}*{t.label}" for t in self.terms)
        )
        return True
