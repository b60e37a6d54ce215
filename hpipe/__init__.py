# An incremental HTTP/1.1 client with pipelining. You make a Connection, issue
# as many requests on it as you like without waiting for the responses, and
# then keep calling pump() while anything is outstanding. Responses are parsed
# as the bytes arrive -- status line, headers, and chunked, length-delimited
# or read-until-close bodies -- and handed to your callbacks piece by piece,
# strictly in the order the requests were sent.

from ._util import (
    ProtocolError,
    LocalProtocolError,
    RemoteProtocolError,
    BadStatusLine,
    UnknownProtocol,
    UnexpectedConnectionClose,
    TransportError,
)
from ._headers import Headers
from ._state import *
from ._response import Response
from ._connection import Connection
from ._transport import SocketTransport
from ._version import __version__

PRODUCT_ID = "hpipe/" + __version__

__all__ = [
    "ProtocolError",
    "LocalProtocolError",
    "RemoteProtocolError",
    "BadStatusLine",
    "UnknownProtocol",
    "UnexpectedConnectionClose",
    "TransportError",
    "Headers",
    "Response",
    "Connection",
    "SocketTransport",
    "PRODUCT_ID",
]
__all__ += _state.__all__
