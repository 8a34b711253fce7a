"""
Visit frequency tracking and domain promotion.
"""

from siterules.learning.usage_learner import UsageLearner

__all__ = ["UsageLearner"]
