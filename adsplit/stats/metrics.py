"""Choice of the Bernoulli rate modelled for one control/challenger pair.

Conversion rate is the rate that matters, but most ads collect conversions
slowly.  Until either side of a comparison has more conversions than the
configured threshold, both sides fall back to click-through rate, which
accumulates signal much faster.  The choice is made once per pair so both
posteriors always describe the same rate.
"""

from __future__ import annotations

import enum
from typing import NamedTuple

from adsplit.models import OutcomeCounts
from adsplit.stats.bayesian import BetaPosterior
from adsplit.stats.errors import InvalidCountsError


class Metric(str, enum.Enum):
    CONVERSION_RATE = "conversion_rate"
    CLICK_THROUGH_RATE = "click_through_rate"


class MetricSelection(NamedTuple):
    metric: Metric
    control: BetaPosterior
    challenger: BetaPosterior


def choose_metric(
    control: OutcomeCounts,
    challenger: OutcomeCounts,
    conversion_threshold: int,
) -> Metric:
    """Return the metric to model for this pair."""
    if (
        control.conversions > conversion_threshold
        or challenger.conversions > conversion_threshold
    ):
        return Metric.CONVERSION_RATE
    return Metric.CLICK_THROUGH_RATE


def posterior_for(counts: OutcomeCounts, metric: Metric) -> BetaPosterior:
    """Build the posterior of *metric* from raw counts.

    Raises
    ------
    InvalidCountsError
        If the successes of the metric exceed its trials, e.g. more
        conversions than clicks.
    """
    if metric is Metric.CONVERSION_RATE:
        successes, trials, label = counts.conversions, counts.clicks, "conversions/clicks"
    else:
        successes, trials, label = counts.clicks, counts.impressions, "clicks/impressions"
    if successes > trials:
        raise InvalidCountsError(
            f"{label} of {successes}/{trials} leaves a negative failure count"
        )
    return BetaPosterior().update(successes, trials)


def select_metric(
    control: OutcomeCounts,
    challenger: OutcomeCounts,
    conversion_threshold: int = 0,
) -> MetricSelection:
    """Pick the metric for a pair and derive both posteriors from it."""
    metric = choose_metric(control, challenger, conversion_threshold)
    return MetricSelection(
        metric=metric,
        control=posterior_for(control, metric),
        challenger=posterior_for(challenger, metric),
    )
