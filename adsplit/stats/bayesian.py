"""Beta-Bernoulli posteriors and the pairwise posterior comparison.

A ``BetaPosterior`` holds observed successes and failures under a uniform
Beta(1, 1) prior, so the posterior is Beta(successes + 1, failures + 1).
The model is immutable: ``update()`` returns a *new* ``BetaPosterior``.

``compare()`` answers two questions about a control A and a challenger B:

- how likely is it that B's true rate exceeds A's, and
- how much rate would be given up, on average, by committing to the
  variant the data currently favours if that choice is wrong.

Both are computed in closed form from Beta function identities by default,
with a seeded Monte Carlo estimator available for cross-checking.
"""

from __future__ import annotations

import math
from typing import NamedTuple

import numpy as np
from scipy import stats as sp_stats
from scipy.special import betaln

from adsplit.stats.errors import ComparisonConvergenceError, InvalidCountsError

CLOSED_FORM = "closed_form"
MONTE_CARLO = "monte_carlo"
METHODS = (CLOSED_FORM, MONTE_CARLO)


class BetaPosterior:
    """Immutable Beta posterior over a Bernoulli rate.

    Parameters
    ----------
    successes : float
        Observed successes (clicks or conversions).  Default 0.
    failures : float
        Observed failures.  Default 0.
    """

    __slots__ = ("successes", "failures")

    def __init__(self, successes: float = 0, failures: float = 0) -> None:
        if successes < 0 or failures < 0:
            raise InvalidCountsError(
                f"successes and failures must be non-negative, got {successes} and {failures}"
            )
        self.successes = successes
        self.failures = failures

    # ------------------------------------------------------------------
    # Posterior update (returns new instance, immutable)
    # ------------------------------------------------------------------

    def update(self, successes: int, trials: int) -> BetaPosterior:
        """Return a **new** BetaPosterior after observing *successes* in *trials*.

        Raises
        ------
        InvalidCountsError
            If either count is negative or successes exceed trials.
        """
        if successes < 0:
            raise InvalidCountsError("successes must be non-negative")
        if trials < 0:
            raise InvalidCountsError("trials must be non-negative")
        if successes > trials:
            raise InvalidCountsError(
                f"successes ({successes}) cannot exceed trials ({trials})"
            )
        return BetaPosterior(
            successes=self.successes + successes,
            failures=self.failures + (trials - successes),
        )

    # ------------------------------------------------------------------
    # Shape parameters and summaries
    # ------------------------------------------------------------------

    @property
    def alpha(self) -> float:
        return self.successes + 1

    @property
    def beta(self) -> float:
        return self.failures + 1

    def posterior_mean(self) -> float:
        """Expected value of the posterior: alpha / (alpha + beta)."""
        return self.alpha / (self.alpha + self.beta)

    def credible_interval(self, width: float = 0.95) -> tuple[float, float]:
        """Equal-tailed credible interval for the rate.

        Parameters
        ----------
        width : float
            Width of the credible interval, e.g. 0.95 for 95%.
        """
        if not 0 < width < 1:
            raise ValueError("width must be between 0 and 1 exclusive")
        lower_tail = (1 - width) / 2
        dist = sp_stats.beta(self.alpha, self.beta)
        return (float(dist.ppf(lower_tail)), float(dist.ppf(1 - lower_tail)))

    def sample(self, n: int, seed: int | None = None) -> np.ndarray:
        """Draw *n* samples from the posterior."""
        rng = np.random.default_rng(seed)
        return rng.beta(self.alpha, self.beta, size=n)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BetaPosterior):
            return NotImplemented
        return (self.successes, self.failures) == (other.successes, other.failures)

    def __hash__(self) -> int:
        return hash((self.successes, self.failures))

    def __repr__(self) -> str:
        return f"BetaPosterior(successes={self.successes}, failures={self.failures})"


class Comparison(NamedTuple):
    """Outcome of comparing a challenger B against a control A.

    ``expected_loss`` is the loss of the decision the probability favours:
    ``loss_choose_b`` when B is at least as likely to be better, otherwise
    ``loss_choose_a``.
    """

    probability_b_beats_a: float
    expected_loss: float
    loss_choose_a: float
    loss_choose_b: float


# ======================================================================
# Closed-form helpers
# ======================================================================

def _series(a_x: float, b_x: float, a_y: float, b_y: float) -> float:
    """P(Y > X) for X ~ Beta(a_x, b_x), Y ~ Beta(a_y, b_y); sums ``a_y`` terms.

    Requires integer ``a_y``::

        sum_{i=0}^{a_y-1} B(a_x+i, b_x+b_y) / ((b_y+i) B(1+i, b_y) B(a_x, b_x))
    """
    i = np.arange(int(a_y), dtype=np.float64)
    log_terms = (
        betaln(a_x + i, b_x + b_y)
        - np.log(b_y + i)
        - betaln(1 + i, b_y)
        - betaln(a_x, b_x)
    )
    return float(np.sum(np.exp(log_terms)))


def _require_integral(*shapes: float) -> None:
    for shape in shapes:
        if not float(shape).is_integer():
            raise InvalidCountsError(
                f"closed-form comparison needs integer counts, got shape {shape}; "
                "use the monte_carlo method for fractional counts"
            )


def probability_greater(
    x: tuple[float, float],
    y: tuple[float, float],
) -> float:
    """Exact P(Y > X) for independent X ~ Beta(*x) and Y ~ Beta(*y).

    The series runs over one integer shape parameter.  Using
    ``P(Y > X) = 1 - P(X > Y)`` and ``1 - Beta(a, b) ~ Beta(b, a)`` any of
    the four shapes can drive the sum, so the smallest one is used.
    """
    a_x, b_x = x
    a_y, b_y = y
    _require_integral(a_x, b_x, a_y, b_y)

    smallest = min(a_y, a_x, b_x, b_y)
    if smallest == a_y:
        p = _series(a_x, b_x, a_y, b_y)
    elif smallest == a_x:
        p = 1.0 - _series(a_y, b_y, a_x, b_x)
    elif smallest == b_x:
        p = _series(b_y, a_y, b_x, a_x)
    else:
        p = 1.0 - _series(b_x, a_x, b_y, a_y)
    return min(1.0, max(0.0, p))


def _closed_form(a: BetaPosterior, b: BetaPosterior) -> tuple[float, float, float]:
    shape_a = (a.alpha, a.beta)
    shape_b = (b.alpha, b.beta)
    shifted_a = (a.alpha + 1, a.beta)
    shifted_b = (b.alpha + 1, b.beta)
    mean_a = a.posterior_mean()
    mean_b = b.posterior_mean()

    p_b = probability_greater(shape_a, shape_b)

    # theta * Beta(a, b) density == mean * Beta(a + 1, b) density
    loss_choose_b = (
        mean_a * probability_greater(shape_b, shifted_a)
        - mean_b * probability_greater(shifted_b, shape_a)
    )
    loss_choose_a = (
        mean_b * probability_greater(shape_a, shifted_b)
        - mean_a * probability_greater(shifted_a, shape_b)
    )
    return p_b, max(0.0, loss_choose_a), max(0.0, loss_choose_b)


def _monte_carlo(
    a: BetaPosterior,
    b: BetaPosterior,
    n_samples: int,
    seed: int,
    tolerance: float,
) -> tuple[float, float, float]:
    if n_samples <= 0:
        raise ValueError("n_samples must be positive")
    rng = np.random.default_rng(seed)
    samples_a = rng.beta(a.alpha, a.beta, size=n_samples)
    samples_b = rng.beta(b.alpha, b.beta, size=n_samples)
    diff = samples_b - samples_a

    p_b = float(np.mean(diff > 0))
    std_error = math.sqrt(p_b * (1 - p_b) / n_samples)
    if std_error > tolerance:
        raise ComparisonConvergenceError(
            f"Monte Carlo standard error {std_error:.5f} exceeds tolerance "
            f"{tolerance:.5f} after {n_samples} samples"
        )
    loss_choose_a = float(np.mean(np.maximum(diff, 0.0)))
    loss_choose_b = float(np.mean(np.maximum(-diff, 0.0)))
    return p_b, loss_choose_a, loss_choose_b


# ======================================================================
# Public comparison
# ======================================================================

def compare(
    control: BetaPosterior,
    challenger: BetaPosterior,
    method: str = CLOSED_FORM,
    n_samples: int = 1_000_000,
    seed: int = 42,
    tolerance: float = 5e-4,
) -> Comparison:
    """Compare a challenger posterior (B) against a control posterior (A).

    Parameters
    ----------
    control, challenger : BetaPosterior
        Posteriors for A and B.
    method : str
        ``"closed_form"`` (exact series) or ``"monte_carlo"``.
    n_samples, seed, tolerance :
        Monte Carlo settings; ignored by the closed form.

    With no data on either side both posteriors are uniform, so the result
    is p = 0.5 with an expected loss of 1/6: the loss reflects total
    uncertainty and does not collapse toward zero for tiny samples.

    Returns
    -------
    Comparison
        P(theta_B > theta_A) and the expected losses of both decisions.

    Raises
    ------
    ComparisonConvergenceError
        If the Monte Carlo estimate is too noisy or any result is not finite.
    """
    if method == CLOSED_FORM:
        p_b, loss_a, loss_b = _closed_form(control, challenger)
    elif method == MONTE_CARLO:
        p_b, loss_a, loss_b = _monte_carlo(control, challenger, n_samples, seed, tolerance)
    else:
        raise ValueError(f"Unknown comparison method {method!r}, expected one of {METHODS}")

    if not all(math.isfinite(v) for v in (p_b, loss_a, loss_b)):
        raise ComparisonConvergenceError(
            f"non-finite comparison for {control!r} vs {challenger!r}"
        )

    expected = loss_b if p_b >= 0.5 else loss_a
    return Comparison(
        probability_b_beats_a=p_b,
        expected_loss=expected,
        loss_choose_a=loss_a,
        loss_choose_b=loss_b,
    )
