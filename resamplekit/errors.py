"""
Exception hierarchy for resampling, fitting and aggregation.

- InvalidParameterError: a usage mistake (bad fold count, malformed
  formula, unknown column). Fatal, raised immediately.
- ResamplingError: resample generation that stays degenerate after retries.
- FitError: a model wrapper could not fit a (degenerate) analysis set.
  The fitter records it against the replicate instead of aborting the batch.
"""

from __future__ import annotations


class ResampleKitError(Exception):
    """Base class for all library errors."""


class InvalidParameterError(ResampleKitError, ValueError):
    """Invalid argument or configuration value."""


class ResamplingError(ResampleKitError):
    """Resample generation failed after exhausting retries."""


class FitError(ResampleKitError):
    """Model fitting failed on a single analysis set."""
