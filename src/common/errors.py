# ABOUTME: Declares the error taxonomy raised at the attempt-source and facade seams.
# ABOUTME: Missing data is never an error; only bad identifiers and failed reads are.


class ProgressMetricsError(Exception):
    """Base class for every error raised by the metrics core."""


class InvalidIdentifierError(ProgressMetricsError, ValueError):
    """Learner identifier is malformed (format check only)."""

    def __init__(self, learner_id: object):
        self.learner_id = learner_id
        super().__init__(f"Invalid learner id: {learner_id!r}")


class NotFoundError(ProgressMetricsError, LookupError):
    """Learner does not exist in the attempt source."""

    def __init__(self, learner_id: str):
        self.learner_id = learner_id
        super().__init__(f"Learner '{learner_id}' not found.")


class SourceUnavailableError(ProgressMetricsError):
    """Attempt history could not be read. Transient; callers decide on retries."""


class InvalidTimezoneError(ProgressMetricsError, ValueError):
    def __init__(self, timezone: object):
        self.timezone = timezone
        super().__init__(f"Unknown timezone: {timezone!r}")


class ConfigError(ProgressMetricsError, ValueError):
    """Metrics configuration is missing a value or holds an out-of-range one."""
