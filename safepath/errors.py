class SafePathError(Exception):
    """Base class for routing/scoring failures."""


class ProviderError(SafePathError):
    """An external provider returned an error, a malformed body, or timed out."""


class NoRouteFound(SafePathError):
    """The routing provider could not produce any route alternatives."""


class NoProcessableRoutes(SafePathError):
    """Every route candidate failed point extraction."""
