"""
Distribution math shared by the statistics and prior layers.

Closed-form approximations of the standard normal CDF and quantile, plus
Gamma / Beta / normal samplers driven by an injectable uniform source.

Every sampler takes a ``numpy.random.Generator`` and draws only uniforms
from it, so a seeded generator makes any Monte Carlo result reproducible.
Use :func:`make_rng` to build one from a seed.
"""

from __future__ import annotations

import math

import numpy as np

from decision_engine.core.exceptions import DistributionDomainError


# Abramowitz & Stegun 7.1.26
_AS_P = 0.3275911
_AS_A = (0.254829592, -0.284496736, 1.421413741, -1.453152027, 1.061405429)

# Rational approximation coefficients for the normal quantile
_Q_A = (
    -3.969683028665376e01,
    2.209460984245205e02,
    -2.759285104469687e02,
    1.383577518672690e02,
    -3.066479806614716e01,
    2.506628277459239e00,
)
_Q_B = (
    -5.447609879822406e01,
    1.615858368580409e02,
    -1.556989798598866e02,
    6.680131188771972e01,
    -1.328068155288572e01,
)
_Q_C = (
    -7.784894002430293e-03,
    -3.223964580411365e-01,
    -2.400758277161838e00,
    -2.549732539343734e00,
    4.374664141464968e00,
    2.938163982698783e00,
)
_Q_D = (
    7.784695709041462e-03,
    3.224671290700398e-01,
    2.445134137142996e00,
    3.754408661907416e00,
)
_Q_LOW = 0.02425


def make_rng(seed: int | np.random.Generator | None = None) -> np.random.Generator:
    """
    Build the uniform source used by the samplers.

    Args:
        seed: An int seed, an existing Generator (returned as-is), or None
              for fresh OS entropy.
    """
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


# ---------------------------------------------------------------------------
# Normal distribution
# ---------------------------------------------------------------------------

def normal_cdf(x: float) -> float:
    """
    Standard normal CDF via the Abramowitz-Stegun erf approximation.

    Absolute error is below ~1.5e-7 over the whole real line.
    """
    sign = 1.0 if x >= 0 else -1.0
    z = abs(x) / math.sqrt(2.0)

    a1, a2, a3, a4, a5 = _AS_A
    t = 1.0 / (1.0 + _AS_P * z)
    y = 1.0 - (((((a5 * t + a4) * t) + a3) * t + a2) * t + a1) * t * math.exp(-z * z)

    return 0.5 * (1.0 + sign * y)


def normal_inverse(p: float) -> float:
    """
    Standard normal quantile (inverse CDF).

    Beasley-Springer-Moro style rational approximation: a central rational
    function on [0.02425, 0.97575] and a tail approximation in sqrt(-2 ln p)
    outside it.

    Raises:
        DistributionDomainError: if ``p`` is not strictly inside (0, 1).
    """
    if not 0.0 < p < 1.0:
        raise DistributionDomainError(
            f"Probability must be strictly between 0 and 1, got {p}", value=p
        )

    c, d = _Q_C, _Q_D
    if p < _Q_LOW:
        q = math.sqrt(-2.0 * math.log(p))
        return (((((c[0] * q + c[1]) * q + c[2]) * q + c[3]) * q + c[4]) * q + c[5]) / (
            (((d[0] * q + d[1]) * q + d[2]) * q + d[3]) * q + 1.0
        )

    if p > 1.0 - _Q_LOW:
        q = math.sqrt(-2.0 * math.log(1.0 - p))
        return -(((((c[0] * q + c[1]) * q + c[2]) * q + c[3]) * q + c[4]) * q + c[5]) / (
            (((d[0] * q + d[1]) * q + d[2]) * q + d[3]) * q + 1.0
        )

    a, b = _Q_A, _Q_B
    q = p - 0.5
    r = q * q
    return (((((a[0] * r + a[1]) * r + a[2]) * r + a[3]) * r + a[4]) * r + a[5]) * q / (
        ((((b[0] * r + b[1]) * r + b[2]) * r + b[3]) * r + b[4]) * r + 1.0
    )


# ---------------------------------------------------------------------------
# Samplers
# ---------------------------------------------------------------------------

def _open_uniform(rng: np.random.Generator) -> float:
    """Uniform draw on the open interval (0, 1)."""
    u = 0.0
    while u == 0.0:
        u = float(rng.random())
    return u


def normal_random(rng: np.random.Generator) -> float:
    """One standard-normal variate from two uniforms (Box-Muller)."""
    u = _open_uniform(rng)
    v = _open_uniform(rng)
    return math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)


def gamma_random(shape: float, rng: np.random.Generator) -> float:
    """
    Gamma(shape, 1) variate via Marsaglia-Tsang rejection sampling.

    For ``shape < 1`` the boost Gamma(shape) = Gamma(1 + shape) * U^(1/shape)
    is used.

    Raises:
        DistributionDomainError: if ``shape`` is not positive.
    """
    if not shape > 0:
        raise DistributionDomainError(f"Gamma shape must be positive, got {shape}", value=shape)

    if shape < 1.0:
        return gamma_random(1.0 + shape, rng) * _open_uniform(rng) ** (1.0 / shape)

    d = shape - 1.0 / 3.0
    c = 1.0 / math.sqrt(9.0 * d)

    while True:
        x = normal_random(rng)
        v = 1.0 + c * x
        while v <= 0:
            x = normal_random(rng)
            v = 1.0 + c * x

        v = v * v * v
        u = _open_uniform(rng)
        x2 = x * x

        if u < 1.0 - 0.0331 * x2 * x2:
            return d * v
        if math.log(u) < 0.5 * x2 + d * (1.0 - v + math.log(v)):
            return d * v


def beta_random(alpha: float, beta: float, rng: np.random.Generator) -> float:
    """Beta(alpha, beta) variate as X / (X + Y) of two Gamma draws."""
    x = gamma_random(alpha, rng)
    y = gamma_random(beta, rng)
    total = x + y
    # Both draws can underflow to zero for tiny shapes
    if total == 0.0:
        return alpha / (alpha + beta)
    return x / total
