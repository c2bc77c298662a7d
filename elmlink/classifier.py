"""ECU error-token screening for adapter responses."""

from enum import Enum

from .constants import ERR_UNABLE, ERR_ERROR, ERR_TIMEOUT, ERR_NO_DATA


class ResponseStatus(Enum):
    OK = "ok"
    UNSUPPORTED = "unsupported"
    LINK_ERROR = "link_error"
    TIMEOUT = "timeout"


# Checked in this order; first hit wins
_ERROR_TOKENS = (
    (ERR_UNABLE,  ResponseStatus.UNSUPPORTED),
    (ERR_ERROR,   ResponseStatus.LINK_ERROR),
    (ERR_TIMEOUT, ResponseStatus.TIMEOUT),
    (ERR_NO_DATA, ResponseStatus.UNSUPPORTED),
)


def classify(text):
    """Return the ResponseStatus for a raw response (str or bytes)."""
    if isinstance(text, (bytes, bytearray)):
        text = text.decode("ascii", errors="replace")
    for token, status in _ERROR_TOKENS:
        if token in text:
            return status
    return ResponseStatus.OK
