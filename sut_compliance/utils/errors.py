"""
Custom Exceptions
Engine-level error types. Gateway failures live in gateways.base.
"""


class ComplianceError(Exception):
    """Base class for compliance engine errors."""

    def __init__(self, detail: str = "Compliance engine error"):
        super().__init__(detail)
        self.detail = detail


class RuleExtractionError(ComplianceError):
    """Raised when a rule extraction run cannot continue."""

    def __init__(self, detail: str = "Rule extraction failed"):
        super().__init__(detail)


class OracleAuthenticationError(RuleExtractionError):
    """Raised when the oracle rejects the configured credential.

    Fatal for the whole extraction run; callers should ask for a new key.
    """

    def __init__(self, detail: str = "Oracle credential is invalid or expired"):
        super().__init__(detail)


class OracleBatchError(RuleExtractionError):
    """Raised when a single oracle batch cannot be used (recoverable)."""

    def __init__(self, detail: str = "Oracle batch reply could not be used"):
        super().__init__(detail)


class SnapshotError(ComplianceError):
    """Raised when a rule snapshot cannot be read or written."""

    def __init__(self, detail: str = "Rule snapshot error"):
        super().__init__(detail)


class AnalysisWorkerError(ComplianceError):
    """Raised when an off-process analysis run fails as a whole."""

    def __init__(self, detail: str = "Analysis worker failed"):
        super().__init__(detail)
