class SuiError(Exception):
    pass


class SuiRpcError(SuiError):
    """Node answered with a JSON-RPC error object."""


class SuiUnavailableError(SuiError):
    """Transport failure, timeout or non-200 after retries."""
