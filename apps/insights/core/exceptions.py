class InsightsError(Exception):
    """Base class for errors raised by the insights core."""


class InvalidDatasetError(InsightsError, ValueError):
    """Headers or rows do not have the shape the core consumes."""


class InvalidColumnStatsError(InsightsError, ValueError):
    """A downstream component received something other than profiler output."""
