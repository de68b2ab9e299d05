"""Chart discovery, validation and descriptor updates.

The descriptor mutators live in `chart_release.chart.update`.
"""

from .discovery import ChartDir, find_charts, lint_charts

__all__ = [
    "ChartDir",
    "find_charts",
    "lint_charts",
]
