"""
Prior strategies for the decision engine.

Two interchangeable strategies build Beta / Gamma priors per arm:
  - HierarchicalBayesPriors: empirical Bayes shrinkage toward the category
  - InformativePriors:       domain knowledge tables with trust-weighted updates
"""

from decision_engine.priors.base import (
    BetaParams,
    GammaParams,
    PriorDistribution,
    PriorMetadata,
    PriorStrategy,
    PriorStrategyMetadata,
)
from decision_engine.priors.hierarchical import CategoryHyperprior, HierarchicalBayesPriors
from decision_engine.priors.informative import DomainPrior, InformativePriors

__all__ = [
    "BetaParams",
    "CategoryHyperprior",
    "DomainPrior",
    "GammaParams",
    "HierarchicalBayesPriors",
    "InformativePriors",
    "PriorDistribution",
    "PriorMetadata",
    "PriorStrategy",
    "PriorStrategyMetadata",
]
