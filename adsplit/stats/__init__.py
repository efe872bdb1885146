"""adsplit Bayesian decision engine.

Public API:
- BetaPosterior: Beta posterior over a click-through or conversion rate
- compare: P(challenger beats control) and expected loss, closed form or Monte Carlo
- select_metric: Conversion rate vs. click-through rate choice for one pair
- classify: Two-threshold winner / loser / inconclusive rule
- run_experiment: Cohort grouping and sequential elimination over a list of items
"""

from adsplit.stats.bayesian import BetaPosterior, Comparison, compare, probability_greater
from adsplit.stats.decisions import Classification, DecisionPolicy, classify
from adsplit.stats.engine import (
    Cohort,
    Decision,
    ExperimentResult,
    evaluate_cohort,
    group_cohorts,
    run_experiment,
    run_with_settings,
)
from adsplit.stats.errors import ComparisonConvergenceError, EngineError, InvalidCountsError
from adsplit.stats.metrics import Metric, MetricSelection, select_metric

__all__ = [
    "BetaPosterior",
    "Comparison",
    "compare",
    "probability_greater",
    "Classification",
    "DecisionPolicy",
    "classify",
    "Cohort",
    "Decision",
    "ExperimentResult",
    "evaluate_cohort",
    "group_cohorts",
    "run_experiment",
    "run_with_settings",
    "ComparisonConvergenceError",
    "EngineError",
    "InvalidCountsError",
    "Metric",
    "MetricSelection",
    "select_metric",
]
