"""
Distribution math for the decision engine.

Normal CDF / quantile approximations and seedable Gamma, Beta and normal
samplers used by the Monte Carlo analyses.
"""

from decision_engine.stats.distributions import (
    beta_random,
    gamma_random,
    make_rng,
    normal_cdf,
    normal_inverse,
    normal_random,
)

__all__ = [
    "beta_random",
    "gamma_random",
    "make_rng",
    "normal_cdf",
    "normal_inverse",
    "normal_random",
]
