"""Tests for cohort grouping and sequential elimination.

Covers:
- Control selection by impressions
- One comparison per challenger, no item classified twice
- Report rows for winners and losers only
- Singleton cohorts, impression filter, custom cohort keys
- Determinism across runs and error propagation
"""

import pytest

from adsplit.core.config import Settings
from adsplit.models import Item, OutcomeCounts, ReportRow
from adsplit.stats.bayesian import compare
from adsplit.stats.decisions import Classification, DecisionPolicy
from adsplit.stats.engine import (
    Cohort,
    evaluate_cohort,
    group_cohorts,
    run_experiment,
    run_with_settings,
)
from adsplit.stats.errors import ComparisonConvergenceError, InvalidCountsError
from adsplit.stats.metrics import Metric


def ad(handle, impressions, clicks, conversions=0, cohort="ag-1", **kwargs) -> Item:
    return Item(
        cohort_key=cohort,
        handle=handle,
        counts=OutcomeCounts(impressions=impressions, clicks=clicks, conversions=conversions),
        **kwargs,
    )


# ======================================================================
# Grouping
# ======================================================================


class TestGroupCohorts:
    def test_partitions_by_key_in_first_appearance_order(self):
        items = [
            ad("a1", 100, 5, cohort="a"),
            ad("b1", 100, 5, cohort="b"),
            ad("a2", 200, 5, cohort="a"),
        ]
        cohorts = group_cohorts(items)
        assert [c.key for c in cohorts] == ["a", "b"]
        assert [i.handle for i in cohorts[0].members] == ["a2", "a1"]
        assert len(cohorts[1]) == 1

    def test_custom_key(self):
        items = [
            ad("x", 100, 5, cohort="a", campaign="Search"),
            ad("y", 100, 5, cohort="b", campaign="Search"),
        ]
        cohorts = group_cohorts(items, cohort_key=lambda item: item.campaign)
        assert len(cohorts) == 1
        assert cohorts[0].key == "Search"


class TestCohort:
    def test_control_has_most_impressions(self):
        cohort = Cohort("ag", [ad("low", 10, 1), ad("high", 500, 3), ad("mid", 90, 9)])
        assert cohort.control.handle == "high"
        assert [i.handle for i in cohort.challengers()] == ["mid", "low"]

    def test_ties_keep_input_order(self):
        cohort = Cohort("ag", [ad("first", 100, 1), ad("second", 100, 9)])
        assert cohort.control.handle == "first"

    def test_singleton_has_no_control(self):
        cohort = Cohort("ag", [ad("only", 100, 1)])
        assert not cohort.contested
        assert cohort.control is None
        assert list(cohort.challengers()) == []

    def test_label_prefers_cohort_label(self):
        assert Cohort("ag-7", [ad("x", 1, 0, cohort_label="Shoes")]).label == "Shoes"
        assert Cohort("ag-7", [ad("x", 1, 0)]).label == "ag-7"


# ======================================================================
# Scenarios
# ======================================================================


class TestScenarios:
    def test_clear_loser(self):
        """Control at 5% CTR against a challenger at ~1.1% CTR."""
        items = [
            ad("challenger", 900, 10, campaign="Search - Brand", cohort_label="Shoes"),
            ad("control", 1000, 50, campaign="Search - Brand", cohort_label="Shoes"),
        ]
        result = run_experiment(
            items, conversion_threshold=0, decision_threshold=0.002, probability_threshold=0.8
        )

        assert result.classifications == {
            "control": Classification.CONTROL,
            "challenger": Classification.LOSER,
        }
        challenger = result.decisions[1]
        assert challenger.metric is Metric.CLICK_THROUGH_RATE
        assert challenger.comparison.probability_b_beats_a < 0.001
        assert challenger.comparison.expected_loss < 0.002
        assert result.report_rows == (
            ReportRow(
                campaign="Search - Brand",
                cohort="Shoes",
                classification="loser",
                probability="0.00%",
                expected_loss="0.00%",
            ),
        )

    def test_clear_winner(self):
        items = [ad("control", 1000, 10), ad("challenger", 900, 60)]
        result = run_experiment(items)
        assert result.classifications["challenger"] is Classification.WINNER
        row = result.report_rows[0]
        assert row.classification == "winner"
        assert row.probability == "100.00%"
        assert row.as_list() == ["", "ag-1", "100.00%", row.expected_loss]

    def test_singleton_cohort_is_skipped(self):
        result = run_experiment([ad("only", 1000, 50)])
        assert result.decisions == ()
        assert result.report_rows == ()

    def test_empty_input(self):
        result = run_experiment([])
        assert result.decisions == ()
        assert result.report_rows == ()

    def test_near_identical_rates_are_inconclusive(self):
        items = [ad("control", 1000, 20), ad("challenger", 990, 20)]
        result = run_experiment(items)
        assert result.classifications["challenger"] is Classification.INCONCLUSIVE
        assert result.report_rows == ()

    def test_conversions_switch_metric(self):
        items = [ad("control", 1000, 50, conversions=1), ad("challenger", 900, 45, conversions=9)]
        result = run_experiment(items)
        assert result.decisions[1].metric is Metric.CONVERSION_RATE


# ======================================================================
# Elimination invariant
# ======================================================================


class CountingComparator:
    def __init__(self):
        self.calls = []

    def __call__(self, control, challenger):
        self.calls.append((control, challenger))
        return compare(control, challenger)


class TestElimination:
    @pytest.mark.parametrize("size", [2, 3, 5, 8])
    def test_one_control_and_one_decision_per_challenger(self, size):
        items = [ad(f"ad-{i}", 1000 - i * 50, 10 + 7 * i) for i in range(size)]
        cohort = group_cohorts(items)[0]
        comparator = CountingComparator()

        decisions = evaluate_cohort(cohort, DecisionPolicy(), comparator)

        classifications = [d.classification for d in decisions]
        assert classifications.count(Classification.CONTROL) == 1
        assert len(decisions) == size
        assert len(comparator.calls) == size - 1
        assert sorted(d.handle for d in decisions) == sorted(i.handle for i in items)

    def test_every_item_classified_once_across_cohorts(self):
        items = []
        for i in range(4):
            items.append(ad(f"a{i}", 500 + i, 20 + i, cohort="a"))
            items.append(ad(f"b{i}", 800 - i, 40 - 5 * i, cohort="b"))
        items.append(ad("c0", 300, 3, cohort="c"))

        result = run_experiment(items)

        handles = [d.handle for d in result.decisions]
        assert len(handles) == len(set(handles)) == 8
        assert "c0" not in handles
        assert result.tally()[Classification.CONTROL] == 2

    def test_challenger_order_does_not_change_results(self):
        control = ad("control", 5000, 100)
        challengers = [ad("x", 900, 5), ad("y", 800, 30), ad("z", 700, 50)]
        forward = run_experiment([control] + challengers).classifications
        backward = run_experiment([control] + challengers[::-1]).classifications
        assert forward == backward

    def test_repeated_runs_are_identical(self):
        items = [ad("c", 1000, 50), ad("l", 900, 10), ad("w", 950, 120), ad("i", 990, 48)]
        first = run_experiment(items)
        second = run_experiment(items)
        assert first.classifications == second.classifications
        assert first.report_rows == second.report_rows

    def test_outcomes_keep_decision_order(self):
        items = [ad("c", 1000, 50), ad("l", 900, 10)]
        assert list(run_experiment(items).outcomes()) == [
            ("c", Classification.CONTROL),
            ("l", Classification.LOSER),
        ]


# ======================================================================
# Filtering, configuration and errors
# ======================================================================


class TestRunOptions:
    def test_min_impressions_is_exclusive(self):
        items = [ad("c", 1000, 50), ad("small", 100, 1)]
        result = run_experiment(items, min_impressions=100)
        assert result.decisions == ()

    def test_no_filter_by_default(self):
        items = [ad("c", 1000, 50), ad("small", 0, 0)]
        result = run_experiment(items)
        assert len(result.decisions) == 2

    def test_custom_cohort_key(self):
        items = [
            ad("c", 1000, 50, cohort="a", campaign="Search"),
            ad("l", 900, 10, cohort="b", campaign="Search"),
        ]
        result = run_experiment(items, cohort_key=lambda item: item.campaign)
        assert result.classifications["l"] is Classification.LOSER

    def test_invalid_counts_propagate(self):
        items = [ad("c", 1000, 50, conversions=60), ad("x", 900, 10)]
        with pytest.raises(InvalidCountsError):
            run_experiment(items)

    def test_invalid_probability_threshold(self):
        with pytest.raises(ValueError, match="probability_threshold"):
            run_experiment([], probability_threshold=0.4)

    def test_monte_carlo_method(self):
        items = [ad("c", 1000, 50), ad("l", 900, 10)]
        result = run_experiment(items, method="monte_carlo", seed=3)
        assert result.classifications["l"] is Classification.LOSER

    def test_run_with_settings(self):
        settings = Settings(MIN_IMPRESSIONS=950, DECISION_THRESHOLD=0.01)
        items = [ad("c", 1000, 50), ad("l", 900, 10), ad("x", 990, 12)]
        result = run_with_settings(items, settings)
        assert set(result.classifications) == {"c", "x"}
        assert result.classifications["x"] is Classification.LOSER

    def test_default_tolerance_rejects_too_few_draws(self):
        settings = Settings(COMPARISON_METHOD="monte_carlo", MC_SAMPLES=50_000, MC_SEED=1)
        items = [ad("c", 1000, 40), ad("x", 1000, 47)]
        with pytest.raises(ComparisonConvergenceError):
            run_with_settings(items, settings)


class TestExperimentResult:
    def test_items_without_handles_keep_every_outcome(self):
        items = [ad(None, 1000 - i, 20 + i) for i in range(4)]
        result = run_experiment(items)

        outcomes = list(result.outcomes())
        assert len(outcomes) == 4
        assert [c for _, c in outcomes].count(Classification.CONTROL) == 1

    def test_classifications_refuse_shared_handles(self):
        items = [ad(None, 1000 - i, 20 + i) for i in range(4)]
        result = run_experiment(items)
        with pytest.raises(ValueError, match="share a handle"):
            result.classifications

    def test_classifications_with_distinct_handles(self):
        items = [ad(f"ad-{i}", 1000 - i, 20 + i) for i in range(4)]
        assert len(run_experiment(items).classifications) == 4
