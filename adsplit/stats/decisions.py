"""Two-threshold decision rule for a single challenger.

A challenger is only called when the expected loss of the favoured decision
is below ``decision_threshold`` *and* the probability is confidently on one
side of 0.5.  A low expected loss alone does not say which way to call the
challenger, so the probability check decides the direction.
"""

from __future__ import annotations

import enum
from typing import NamedTuple

from adsplit.stats.bayesian import Comparison


class Classification(str, enum.Enum):
    CONTROL = "control"
    WINNER = "winner"
    LOSER = "loser"
    INCONCLUSIVE = "inconclusive"

    @property
    def reportable(self) -> bool:
        return self in (Classification.WINNER, Classification.LOSER)


class DecisionPolicy(NamedTuple):
    """Thresholds applied to every comparison in a run.

    Parameters
    ----------
    conversion_threshold : int
        Conversions either side must exceed before conversion rate is used.
    decision_threshold : float
        Maximum acceptable expected loss.
    probability_threshold : float
        Minimum confidence, strictly between 0.5 and 1.
    """

    conversion_threshold: int = 0
    decision_threshold: float = 0.002
    probability_threshold: float = 0.8

    def validate(self) -> DecisionPolicy:
        if self.conversion_threshold < 0:
            raise ValueError("conversion_threshold must be non-negative")
        if self.decision_threshold <= 0:
            raise ValueError("decision_threshold must be positive")
        if not 0.5 < self.probability_threshold < 1:
            raise ValueError("probability_threshold must be between 0.5 and 1 exclusive")
        return self


def classify(
    comparison: Comparison,
    decision_threshold: float = 0.002,
    probability_threshold: float = 0.8,
) -> Classification:
    """Classify a challenger from its comparison against the control."""
    p = comparison.probability_b_beats_a
    if comparison.expected_loss < decision_threshold:
        if p > probability_threshold:
            return Classification.WINNER
        if p < 1 - probability_threshold:
            return Classification.LOSER
    return Classification.INCONCLUSIVE
