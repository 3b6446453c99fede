"""Chi-square statistics for turning -2 log L values into p-values.

Pure functions with no dependencies beyond ``math``. The incomplete gamma
function is computed from its power series; the Lentz continued fraction takes
over only when the series fails to converge in its term budget (x far above a).
"""

from __future__ import annotations

import math

from .models import SignificanceLevel

LANCZOS_G = 7
LANCZOS_COEFFICIENTS = (
    0.99999999999980993,
    676.5203681218851,
    -1259.1392167224028,
    771.32342877765313,
    -176.61502916214059,
    12.507343278686905,
    -0.13857109526572012,
    9.9843695780195716e-6,
    1.5056327351493116e-7,
)

SERIES_MAX_TERMS = 200
SERIES_TOLERANCE = 1e-14

_CF_MAX_ITERATIONS = 300
_CF_TINY = 1e-300

# One-sided Gaussian tail p-values at 1..5 sigma, paired with the bucket below each
SIGNIFICANCE_THRESHOLDS = (
    (0.3173, SignificanceLevel.BELOW_1_SIGMA),
    (0.0455, SignificanceLevel.SIGMA_1_TO_2),
    (0.0027, SignificanceLevel.SIGMA_2_TO_3),
    (6.3e-5, SignificanceLevel.SIGMA_3_TO_4),
    (5.7e-7, SignificanceLevel.SIGMA_4_TO_5),
)

# Δχ² for 68.27 / 95.45 / 99.73 % CL
DELTA_CHI2_LEVELS: dict[int, dict[str, float]] = {
    1: {"68.27%": 1.00, "95.45%": 4.00, "99.73%": 9.00},
    2: {"68.27%": 2.30, "95.45%": 6.18, "99.73%": 11.83},
}


def ln_gamma(z: float) -> float:
    """ln|Γ(z)| via the Lanczos approximation, with reflection below 0.5."""
    if z <= 0 and z == math.floor(z):
        raise ValueError(f"ln_gamma has a pole at z={z}")
    if z < 0.5:
        sin_term = math.sin(math.pi * z)
        return math.log(math.pi / abs(sin_term)) - ln_gamma(1.0 - z)

    z -= 1.0
    x = LANCZOS_COEFFICIENTS[0]
    for i in range(1, LANCZOS_G + 2):
        x += LANCZOS_COEFFICIENTS[i] / (z + i)
    t = z + LANCZOS_G + 0.5
    return 0.5 * math.log(2.0 * math.pi) + (z + 0.5) * math.log(t) - t + math.log(x)


def _upper_gamma_continued_fraction(a: float, x: float, ln_gamma_a: float) -> float:
    """Regularized Q(a, x) by modified Lentz evaluation."""
    b = x + 1.0 - a
    c = 1.0 / _CF_TINY
    d = 1.0 / b
    h = d
    for i in range(1, _CF_MAX_ITERATIONS + 1):
        an = -i * (i - a)
        b += 2.0
        d = an * d + b
        if abs(d) < _CF_TINY:
            d = _CF_TINY
        c = b + an / c
        if abs(c) < _CF_TINY:
            c = _CF_TINY
        d = 1.0 / d
        delta = d * c
        h *= delta
        if abs(delta - 1.0) < SERIES_TOLERANCE:
            break
    return math.exp(-x + a * math.log(x) - ln_gamma_a) * h


def lower_incomplete_gamma(a: float, x: float) -> float:
    """Regularized lower incomplete gamma P(a, x), clamped to [0, 1].

    P(a, x) = e^-x x^a / Γ(a) · Σ x^n / (a (a+1) ... (a+n))
    """
    if a <= 0:
        raise ValueError("a must be positive")
    if x <= 0:
        return 0.0

    ln_gamma_a = ln_gamma(a)
    term = 1.0 / a
    total = term
    converged = False
    for n in range(1, SERIES_MAX_TERMS):
        term *= x / (a + n)
        total += term
        if abs(term) < SERIES_TOLERANCE * abs(total):
            converged = True
            break

    if converged:
        result = math.exp(-x + a * math.log(x) - ln_gamma_a) * total
    else:
        result = 1.0 - _upper_gamma_continued_fraction(a, x, ln_gamma_a)
    return min(max(result, 0.0), 1.0)


def chi2_cdf(x: float, k: float) -> float:
    """P(χ² <= x) for k degrees of freedom."""
    if k <= 0:
        raise ValueError("degrees of freedom must be positive")
    if x <= 0:
        return 0.0
    return lower_incomplete_gamma(k / 2.0, x / 2.0)


def chi2_pvalue(chi2: float, ndf: float) -> float:
    """Probability of observing a χ² at least this large."""
    return 1.0 - chi2_cdf(chi2, ndf)


def classify_significance(p_value: float) -> SignificanceLevel:
    """Map a p-value onto its Gaussian-equivalent sigma bucket."""
    for threshold, level in SIGNIFICANCE_THRESHOLDS:
        if p_value > threshold:
            return level
    return SignificanceLevel.ABOVE_5_SIGMA
