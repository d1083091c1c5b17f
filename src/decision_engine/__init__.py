"""
Decision engine: statistical decision core for paid-acquisition experiments.

Answers three questions for an experimentation / budget-allocation loop:
  - Is this variant really better than control? (experiments)
  - What do we believe about each arm before seeing new data? (priors)
  - How do we turn a raw budget split into one that respects every
    bound and the total budget? (optimization)

Quickstart::

    from decision_engine.core import MetricData
    from decision_engine.experiments import StatisticalAnalyzer

    analyzer = StatisticalAnalyzer(seed=42)
    result = analyzer.two_proportion_test(
        MetricData(successes=2500, trials=50_000),
        MetricData(successes=3500, trials=50_000),
    )
"""

__version__ = "0.1.0"
