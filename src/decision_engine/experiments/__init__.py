"""
Experiment analysis for the decision engine.

Provides tools for analysing A/B experiments on rate metrics:
  - Frequentist two-proportion z-test and sample-size / power formulas
  - Bayesian Beta-Binomial comparison
  - Sequential early stopping
  - Power analysis for experiment planning
"""

from decision_engine.experiments.power_analysis import (
    ExperimentPlan,
    PowerAnalysisResult,
    PowerAnalyzer,
)
from decision_engine.experiments.statistics import (
    BayesianResult,
    EarlyStoppingResult,
    StatisticalAnalyzer,
    StatisticalTestResult,
)

__all__ = [
    "BayesianResult",
    "EarlyStoppingResult",
    "ExperimentPlan",
    "PowerAnalysisResult",
    "PowerAnalyzer",
    "StatisticalAnalyzer",
    "StatisticalTestResult",
]
