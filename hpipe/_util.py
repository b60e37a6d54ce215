__all__ = [
    "ProtocolError",
    "LocalProtocolError",
    "RemoteProtocolError",
    "BadStatusLine",
    "UnknownProtocol",
    "UnexpectedConnectionClose",
    "TransportError",
    "validate",
    "make_sentinel",
    "bytesify",
]


class ProtocolError(Exception):
    """Exception indicating a violation of the HTTP/1.1 protocol.

    This as an abstract base class, with two concrete base classes:
    :exc:`LocalProtocolError`, which indicates that you tried to do something
    that hpipe does not allow (sending a header outside of a request, reading
    the status of a response before its status line arrived, ...), and
    :exc:`RemoteProtocolError`, which indicates that the server sent us
    something we could not make sense of.

    A :exc:`LocalProtocolError` is a bug in the calling code. A
    :exc:`RemoteProtocolError` only dooms the response (and the connection)
    it was raised from; you are free to open a new connection and try again.

    """

    def __init__(self, msg):
        if type(self) is ProtocolError:
            raise TypeError("tried to directly instantiate ProtocolError")
        Exception.__init__(self, msg)


# Strategy: the small parsing helpers (validate() and friends) don't know who
# is calling them, so they always raise LocalProtocolError. Response.feed() is
# the only place where peer data enters the parser, and it translates these
# into RemoteProtocolError on the way out.
class LocalProtocolError(ProtocolError):
    def _reraise_as_remote_protocol_error(self):
        # After catching a LocalProtocolError, use this method to re-raise it
        # as a RemoteProtocolError. This method must be called from inside an
        # except: block.
        #
        # Python tracks the exception type separately from the exception
        # object, so modifying __class__ in place and then doing a bare
        # 'raise' would still re-raise a LocalProtocolError. The traceback
        # lives on the exception object though, so raising 'self' keeps it.
        self.__class__ = RemoteProtocolError
        raise self


class RemoteProtocolError(ProtocolError):
    pass


class BadStatusLine(RemoteProtocolError):
    pass


class UnknownProtocol(RemoteProtocolError):
    pass


class UnexpectedConnectionClose(RemoteProtocolError):
    pass


class TransportError(Exception):
    """The underlying byte stream failed (connect, send or receive).

    .. attribute:: connection

       The :class:`hpipe.Connection` that was using the stream. It has
       already been closed when you see this exception, and all of its
       outstanding responses were discarded.

    """

    def __init__(self, msg, connection=None):
        Exception.__init__(self, msg)
        self.connection = connection


def validate(regex, data, msg="malformed data", *format_args):
    match = regex.fullmatch(data)
    if not match:
        if format_args:
            msg = msg.format(*format_args)
        raise LocalProtocolError(msg)
    return match.groupdict()


# Sentinel values
#
# - Inherit identity-based comparison and hashing from object
# - Have a nice repr
# - Have a *bonus property*: type(sentinel) is sentinel
#
# The bonus property is useful if you want to take the return value from
# Response.state and dispatch on it with a dict keyed by type.
class _SentinelBase(type):
    def __repr__(self):
        return self.__name__


def make_sentinel(name):
    cls = _SentinelBase(name, (_SentinelBase,), {})
    cls.__class__ = cls
    return cls


# Used for methods, urls, header names, and header values. Accepts
# ascii-strings, or bytes/bytearray/memoryview/..., and always returns bytes.
def bytesify(s):
    # Fast-path:
    if type(s) is bytes:
        return s
    if isinstance(s, str):
        s = s.encode("ascii")
    if isinstance(s, int):
        raise TypeError("expected bytes-like object, not int")
    return bytes(s)
