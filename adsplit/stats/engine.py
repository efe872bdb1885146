"""Cohort grouping and sequential elimination.

``run_experiment`` is the single entry point used by callers: it partitions
the items into cohorts, picks the most-shown item of each cohort as control,
then drains the remaining items one by one, comparing each against the
control exactly once.

Steps per cohort:
1. Sort members by impressions, highest first (ties keep input order)
2. Skip the cohort if it has fewer than two members
3. Label the first member as control
4. Pop each challenger off a queue, pick the metric for the pair, compare
   the posteriors and classify
5. Emit a report row for every winner and loser
"""

from __future__ import annotations

import functools
import logging
from collections import Counter, deque
from collections.abc import Callable, Hashable, Iterable, Iterator
from operator import attrgetter
from typing import Any, NamedTuple

from adsplit.core.config import Settings
from adsplit.models import Item, ReportRow, format_percent
from adsplit.stats.bayesian import CLOSED_FORM, Comparison, compare
from adsplit.stats.decisions import Classification, DecisionPolicy, classify
from adsplit.stats.metrics import Metric, select_metric

logger = logging.getLogger(__name__)

by_cohort_key = attrgetter("cohort_key")


class Decision(NamedTuple):
    item: Item
    classification: Classification
    metric: Metric | None = None
    comparison: Comparison | None = None

    @property
    def handle(self) -> Any:
        return self.item.handle


class Cohort:
    """Items competing within one cohort key, ordered by impressions."""

    __slots__ = ("key", "members")

    def __init__(self, key: Hashable, members: Iterable[Item]) -> None:
        self.key = key
        self.members: tuple[Item, ...] = tuple(
            sorted(members, key=attrgetter("impressions"), reverse=True)
        )

    @property
    def contested(self) -> bool:
        return len(self.members) >= 2

    @property
    def control(self) -> Item | None:
        """The control item, or ``None`` when there is nothing to compare."""
        return self.members[0] if self.contested else None

    @property
    def label(self) -> str:
        if self.members and self.members[0].cohort_label:
            return self.members[0].cohort_label
        return str(self.key)

    def challengers(self) -> Iterator[Item]:
        """Yield every challenger once, removing it from the working queue."""
        if not self.contested:
            return
        queue = deque(self.members[1:])
        while queue:
            yield queue.popleft()

    def __len__(self) -> int:
        return len(self.members)

    def __repr__(self) -> str:
        return f"Cohort(key={self.key!r}, size={len(self.members)})"


class ExperimentResult(NamedTuple):
    decisions: tuple[Decision, ...]
    report_rows: tuple[ReportRow, ...]

    @property
    def classifications(self) -> dict[Hashable, Classification]:
        """Classification per item handle.

        Raises
        ------
        ValueError
            If two decisions share a handle, since the mapping would drop one
            of them.  ``outcomes()`` works for any handles.
        """
        mapping = {d.handle: d.classification for d in self.decisions}
        if len(mapping) != len(self.decisions):
            raise ValueError(
                f"{len(self.decisions) - len(mapping)} decision(s) share a handle "
                "with another item; give every item a distinct handle or use outcomes()"
            )
        return mapping

    def outcomes(self) -> Iterator[tuple[Any, Classification]]:
        for decision in self.decisions:
            yield decision.handle, decision.classification

    def tally(self) -> Counter:
        return Counter(d.classification for d in self.decisions)


# ======================================================================
# Grouping
# ======================================================================

def group_cohorts(
    items: Iterable[Item],
    cohort_key: Callable[[Item], Hashable] = by_cohort_key,
) -> list[Cohort]:
    """Partition items by *cohort_key*, in order of first appearance."""
    groups: dict[Hashable, list[Item]] = {}
    for item in items:
        groups.setdefault(cohort_key(item), []).append(item)
    return [Cohort(key, members) for key, members in groups.items()]


def filter_eligible(items: Iterable[Item], min_impressions: int | None) -> list[Item]:
    """Keep items with strictly more than *min_impressions* impressions."""
    items = list(items)
    if min_impressions is None:
        return items
    eligible = [item for item in items if item.impressions > min_impressions]
    dropped = len(items) - len(eligible)
    if dropped:
        logger.warning(
            "Dropped %d item(s) with %d impressions or fewer", dropped, min_impressions
        )
    return eligible


# ======================================================================
# Evaluation
# ======================================================================

def evaluate_cohort(
    cohort: Cohort,
    policy: DecisionPolicy = DecisionPolicy(),
    comparator: Callable[..., Comparison] = compare,
) -> list[Decision]:
    """Classify every member of one cohort.

    Cohorts share no state, so a caller may evaluate them in parallel.
    Returns an empty list for cohorts with fewer than two members.
    """
    control = cohort.control
    if control is None:
        logger.debug("Skipping %r: nothing to compare against", cohort)
        return []

    decisions = [Decision(control, Classification.CONTROL)]
    for challenger in cohort.challengers():
        selection = select_metric(
            control.counts, challenger.counts, policy.conversion_threshold
        )
        comparison = comparator(selection.control, selection.challenger)
        classification = classify(
            comparison, policy.decision_threshold, policy.probability_threshold
        )
        logger.debug(
            "Cohort %s: %s p=%.4f loss=%.6f -> %s",
            cohort.label,
            selection.metric.value,
            comparison.probability_b_beats_a,
            comparison.expected_loss,
            classification.value,
        )
        decisions.append(Decision(challenger, classification, selection.metric, comparison))
    return decisions


def report_row(decision: Decision, cohort: Cohort) -> ReportRow:
    comparison = decision.comparison
    return ReportRow(
        campaign=decision.item.campaign,
        cohort=decision.item.cohort_label or cohort.label,
        classification=decision.classification.value,
        probability=format_percent(comparison.probability_b_beats_a),
        expected_loss=format_percent(comparison.expected_loss),
    )


def run_experiment(
    items: Iterable[Item],
    cohort_key: Callable[[Item], Hashable] | None = None,
    conversion_threshold: int = 0,
    decision_threshold: float = 0.002,
    probability_threshold: float = 0.8,
    min_impressions: int | None = None,
    method: str = CLOSED_FORM,
    n_samples: int = 1_000_000,
    seed: int = 42,
    tolerance: float = 5e-4,
) -> ExperimentResult:
    """Classify every item against the control of its cohort.

    Parameters
    ----------
    items : Iterable[Item]
        Candidates from every cohort, in any order.
    cohort_key : callable, optional
        Extracts the cohort key from an item; defaults to ``item.cohort_key``.
    conversion_threshold, decision_threshold, probability_threshold :
        Decision policy, see ``DecisionPolicy``.
    min_impressions : int | None
        If set, items with this many impressions or fewer are ignored.
    method, n_samples, seed, tolerance :
        Posterior comparison settings, see ``compare``.

    Returns
    -------
    ExperimentResult
        Decisions in cohort order (control first) and report rows for
        winners and losers.

    Raises
    ------
    InvalidCountsError
        If an item's counts cannot form a posterior for the chosen metric.
    ComparisonConvergenceError
        If a comparison does not produce a trustworthy value.
    """
    policy = DecisionPolicy(
        conversion_threshold, decision_threshold, probability_threshold
    ).validate()
    comparator = functools.partial(
        compare, method=method, n_samples=n_samples, seed=seed, tolerance=tolerance
    )
    cohorts = group_cohorts(
        filter_eligible(items, min_impressions), cohort_key or by_cohort_key
    )

    decisions: list[Decision] = []
    rows: list[ReportRow] = []
    for cohort in cohorts:
        cohort_decisions = evaluate_cohort(cohort, policy, comparator)
        decisions.extend(cohort_decisions)
        rows.extend(
            report_row(d, cohort) for d in cohort_decisions if d.classification.reportable
        )

    result = ExperimentResult(tuple(decisions), tuple(rows))
    tally = result.tally()
    logger.info(
        "Evaluated %d cohort(s): %d winner(s), %d loser(s), %d inconclusive",
        sum(1 for c in cohorts if c.contested),
        tally[Classification.WINNER],
        tally[Classification.LOSER],
        tally[Classification.INCONCLUSIVE],
    )
    return result


def run_with_settings(
    items: Iterable[Item],
    settings: Settings,
    cohort_key: Callable[[Item], Hashable] | None = None,
) -> ExperimentResult:
    """``run_experiment`` with every policy value taken from *settings*."""
    return run_experiment(
        items,
        cohort_key=cohort_key,
        conversion_threshold=settings.CONVERSION_THRESHOLD,
        decision_threshold=settings.DECISION_THRESHOLD,
        probability_threshold=settings.PROBABILITY_THRESHOLD,
        min_impressions=settings.MIN_IMPRESSIONS,
        method=settings.COMPARISON_METHOD,
        n_samples=settings.MC_SAMPLES,
        seed=settings.MC_SEED,
        tolerance=settings.MC_TOLERANCE,
    )
