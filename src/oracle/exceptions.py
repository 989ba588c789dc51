class OracleError(Exception):
    """Valuation of a single deposit failed. Callers skip the event."""


class UnknownPool(OracleError):
    pass


class UnknownToken(OracleError):
    pass


class SourceUnavailable(OracleError):
    """Chain or price source failed and no fallback applies."""


class ConfigError(Exception):
    """Pool/token configuration is inconsistent. Raised at startup only."""
