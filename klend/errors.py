"""Error taxonomy for the lending read-model."""


class KlendError(Exception):
    """Base error for all lending model failures."""


class ReserveNotFoundError(KlendError, LookupError):
    """A reserve (by address or mint) is absent from the market."""


class PositionNotFoundError(KlendError, LookupError):
    """The obligation holds no deposit or borrow in the requested reserve."""


class InvalidCurveError(KlendError, ValueError):
    """The borrow rate curve has no points."""


class UnsupportedActionError(KlendError, ValueError):
    """The action tag is not handled by the requested calculation."""


class ElevationGroupError(KlendError):
    """The obligation's elevation group is incompatible with the target reserve."""


class ReserveStatusError(KlendError, ValueError):
    """A reserve account carries an unknown status code."""
