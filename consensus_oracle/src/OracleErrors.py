"""Exceptions raised by the aggregation engine."""


class OracleError(Exception):
    """Base exception for aggregation failures surfaced to callers."""

    kind = "oracle_error"


class InvalidRequest(OracleError):
    """Raised when caller input is malformed or incomplete."""

    kind = "invalid_request"


class NoApplicableSource(OracleError):
    """Raised when none of the requested sources can serve the category."""

    kind = "no_applicable_source"


class NoDataAvailable(OracleError):
    """Raised when every dispatched adapter call failed.

    :ivar attempted_sources: Sources that were actually dispatched.
    :ivar failures: Dict mapping each failed source to its error message.
    """

    kind = "no_data_available"

    def __init__(self, attempted_sources: list[str], failures: dict[str, str]):
        """Initialize the error.

        :param attempted_sources: Sources that were dispatched.
        :param failures: Per-source error messages.
        """
        self.attempted_sources = list(attempted_sources)
        self.failures = dict(failures)
        detail = "; ".join(f"{s}: {e}" for s, e in self.failures.items())
        super().__init__(
            f"No oracle sources returned valid data ({detail or 'no responses'})"
        )


class InvariantViolation(OracleError):
    """Raised when an internal precondition is broken. Always a defect."""

    kind = "invariant_violation"


class PersistenceError(Exception):
    """Raised by persistence collaborators when a submission fails."""

    pass
