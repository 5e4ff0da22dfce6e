# exitcast/core/errors.py
"""
Error kinds raised by the forecasting and simulation core.

None of these are recovered from inside the core. The caller (app.py or a
script) decides whether to log, report, or re-run with different inputs.
"""


class ExitCastError(Exception):
    """Base class for all errors raised by the exitcast core."""


class DataError(ExitCastError, ValueError):
    """Malformed input series, or a gap that cannot be filled."""


class ModelFitError(ExitCastError):
    """A time-series model failed to fit or produced unusable output."""


class UncertaintyError(ExitCastError, ValueError):
    """A forecast interval is inverted, which would imply a negative standard deviation."""


class HorizonIndexError(ExitCastError, IndexError):
    """Requested horizon offset is outside the forecast."""


class DivisionError(ExitCastError, ZeroDivisionError):
    """A simulated exit cap rate is zero or non-finite."""
