"""
Coverage tracking package.

Modules:
- coverage_tracker: Versioned, incrementally rebuilt coverage aggregates
- coverage_calculator: Version-cached boundary coverage statistics
"""

from .coverage_calculator import CoverageCalculator
from .coverage_tracker import CoverageTracker, TrackerStats

__all__ = ["CoverageCalculator", "CoverageTracker", "TrackerStats"]
