# errors.py
# Error kinds raised by the infant mortality pipeline.
# Each carries the offending (code, cohort, sex) key when there is one.

class MortalityPipelineError(Exception):
    """Base class. ``key`` is a (code, cohort, sex) tuple or None."""

    def __init__(self, message, key=None):
        self.key = key
        if key is not None:
            message = f"{message} [key={format_key(key)}]"
        super().__init__(message)

    def __str__(self):
        # KeyError would otherwise repr() the message
        return self.args[0] if self.args else ""


class MissingTriangleError(MortalityPipelineError, KeyError):
    """A (code, cohort, sex) key lacks its lower or upper Lexis triangle."""


class DivideByZeroError(MortalityPipelineError, ZeroDivisionError):
    """Rate requested for a record with zero exposure."""


class DomainError(MortalityPipelineError, ValueError):
    """Logarithm requested for a non-positive rate."""


class InsufficientDataError(MortalityPipelineError, ValueError):
    """Design matrix is empty or rank deficient."""


class ConfigurationError(MortalityPipelineError, RuntimeError):
    """Missing cache file, missing credentials or inconsistent settings."""


class NotNestedError(MortalityPipelineError, ValueError):
    """F-test requested for two models whose term sets are not nested."""


def format_key(key):
    code, cohort, sex = key
    cohort = "*" if cohort is None else int(cohort)
    return f"{code or '*'}/{cohort}/{sex or '*'}"
