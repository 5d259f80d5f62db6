"""
Exceptions raised by the panel pipeline.

Fatal conditions (bad schema, ambiguous join keys, bad configuration) are
raised; missing values and degenerate regressions are never raised, they
are recorded in-band as NaN cells and model-fit statuses.
"""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """
    Base exception for all pipeline errors.

    Carries the name of the stage that failed so a run can report
    "<Stage>: <expectation>" to the user.
    """

    def __init__(self, message: str, stage: Optional[str] = None):
        self.stage = stage
        self.detail = message
        super().__init__(f"{stage}: {message}" if stage else message)


class SchemaError(PipelineError):
    """
    Raised when an input table does not have the expected shape.

    Covers:
    - expected columns that are absent
    - year column labels that do not parse as integers
    - duplicate (country, year, indicator) observations under the "raise" policy
    - output tables that do not match the locked analysis schema
    """


class JoinKeyAmbiguity(PipelineError):
    """
    Raised when the right side of a left join holds more than one row per key.

    A left join against such a table would fan out left rows, so the join
    is refused instead.
    """


class ConfigurationError(PipelineError):
    """Raised for invalid pipeline configuration values."""
