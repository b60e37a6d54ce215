# This contains the main Connection class. Everything in hpipe revolves around
# this.

import collections
import logging

from ._headers import has_header, normalize_request_headers
from ._receivebuffer import DEFAULT_MAX_LINE_SIZE
from ._response import Response
from ._state import IDLE, next_request_state
from ._transport import SocketTransport
from ._util import (
    LocalProtocolError,
    RemoteProtocolError,
    TransportError,
    bytesify,
)
from ._writers import write_header_line, write_request_head, write_request_line

# Everything in __all__ gets re-exported as part of the hpipe public API.
__all__ = ["Connection"]

logger = logging.getLogger("hpipe")

DEFAULT_PORT = 80

# How much we ask the transport for on each pump().
DEFAULT_READ_SIZE = 2048


class Connection:
    """A client connection to one HTTP/1.1 server, with pipelining.

    Requests are written as soon as their head is complete, without waiting
    for earlier responses, and every request gets a :class:`Response` at the
    back of a queue. :meth:`pump` reads whatever the server has sent and
    feeds it to the response at the front of the queue; when that one
    finishes, the leftovers go to the next one. So responses always complete
    in the order their requests were sent.

    Typical use::

        conn = Connection("example.com")
        conn.set_callbacks(on_begin, on_data, on_complete)
        conn.request("GET", "/")
        conn.request("GET", "/favicon.ico")
        while conn.outstanding():
            conn.pump()

    The connection to the server is opened lazily, by the first request, and
    reopened the same way after :meth:`close`.

    Not thread safe: use one Connection per thread.

    """

    def __init__(
        self,
        host,
        port=DEFAULT_PORT,
        *,
        read_size=DEFAULT_READ_SIZE,
        max_line_size=DEFAULT_MAX_LINE_SIZE,
        transport_factory=SocketTransport.connect,
    ):
        self.host = host
        self.port = port
        self._read_size = read_size
        self._max_line_size = max_line_size
        self._transport_factory = transport_factory
        self._transport = None

        self._request_state = IDLE
        self._outgoing_lines = []
        self._outstanding = collections.deque()

        # Bytes the server sent when no response was outstanding. See pump().
        self.trailing_data = b""

        self._on_begin = None
        self._on_data = None
        self._on_complete = None
        self._context = None

    def __repr__(self):
        return "<{} {}:{} outstanding={}>".format(
            self.__class__.__name__, self.host, self.port, len(self._outstanding)
        )

    @property
    def connected(self):
        return self._transport is not None

    @property
    def request_state(self):
        return self._request_state

    def outstanding(self):
        """True while any request is still waiting for (the rest of) its
        response. This is what your polling loop should check."""
        return bool(self._outstanding)

    def set_callbacks(self, on_begin=None, on_data=None, on_complete=None, context=None):
        """Register the handlers for every response created from now on.

        - ``on_begin(response)``: the status line and headers are in, and the
          body framing is decided.
        - ``on_data(response, data)``: the next piece of the body.
        - ``on_complete(response)``: the response is finished.

        ``context`` is made available as ``response.context``.
        """
        self._on_begin = on_begin
        self._on_data = on_data
        self._on_complete = on_complete
        self._context = context

    ################################################################
    # Sending
    ################################################################

    def _advance_request_state(self, action):
        self._request_state = next_request_state(self._request_state, action)

    def _host_header(self):
        host = bytesify(self.host)
        if self.port == DEFAULT_PORT:
            return host
        return b"%s:%d" % (host, self.port)

    def putrequest(self, method, url):
        """Start a request: write the request line and the headers we always
        send (``Host`` and ``Accept-Encoding: identity``)."""
        # Everything is validated before the request state changes, so a bad
        # method, url or host leaves the connection as it was.
        lines = [
            write_request_line(method, url),
            # required for HTTP/1.1
            write_header_line("Host", self._host_header()),
            # we can't decode anything else
            write_header_line("Accept-Encoding", "identity"),
        ]
        self._advance_request_state("putrequest")
        self._outgoing_lines.extend(lines)
        logger.debug("Request %s", lines[0].decode("latin-1"))

        response = Response(
            method,
            on_begin=self._on_begin,
            on_data=self._on_data,
            on_complete=self._on_complete,
            context=self._context,
            max_line_size=self._max_line_size,
        )
        self._outstanding.append(response)

    def putheader(self, name, value):
        """Add a header to the request started by :meth:`putrequest`.
        ``value`` can be a string, bytes, or an int."""
        line = write_header_line(name, value)
        self._advance_request_state("putheader")
        self._outgoing_lines.append(line)

    def endheaders(self):
        """Finish the request head and send it."""
        self._advance_request_state("endheaders")
        self._outgoing_lines.append(b"")
        data = write_request_head(self._outgoing_lines)
        self._outgoing_lines = []
        self.send(data)

    def send(self, data):
        """Write raw bytes (typically a request body) to the server,
        connecting first if needed."""
        if self._transport is None:
            self._connect()
        try:
            self._transport.sendall(bytesify(data))
        except OSError as exc:
            self._fail_transport("send", exc)

    def request(self, method, url, headers=None, body=None, body_length=None):
        """Send a complete request.

        ``headers`` is a mapping or a list of ``(name, value)`` pairs. If
        there's a ``body`` and the headers don't mention Content-Length, one
        is added, using ``body_length`` (default: ``len(body)``).
        """
        headers = normalize_request_headers(headers)
        got_content_length = has_header(headers, "Content-Length")

        self.putrequest(method, url)
        if body is not None and not got_content_length:
            if body_length is None:
                body_length = len(body)
            self.putheader("Content-Length", body_length)
        for name, value in headers:
            self.putheader(name, value)
        self.endheaders()
        if body is not None:
            self.send(body)

    ################################################################
    # Receiving
    ################################################################

    def pump(self, timeout=0.0):
        """Read whatever the server has sent, and feed it to the responses.

        With the default ``timeout`` of 0 this never blocks: if there's
        nothing to read it returns straight away. Pass a positive number (or
        None, for no limit) to wait that long for data instead.

        Raises :exc:`RemoteProtocolError` if the server sent something
        malformed, and :exc:`TransportError` if the stream broke. Either way
        the connection has been closed and its outstanding responses
        discarded. The same goes for anything your callbacks raise, which
        propagates unchanged.
        """
        if not self._outstanding:
            return
        if self._transport is None:
            raise LocalProtocolError("requests outstanding but not connected")

        try:
            if not self._transport.readable(timeout):
                return
            data = self._transport.recv(self._read_size)
        except OSError as exc:
            self._fail_transport("recv", exc)

        if data:
            self._receive_data(data)
        else:
            self._receive_eof()

    def _receive_eof(self):
        logger.debug("Connection to %s:%d closed by peer", self.host, self.port)
        response = self._outstanding.popleft()
        try:
            response.notify_connection_closed()
        finally:
            # any other outstanding requests will never get an answer
            self.close()

    def _receive_data(self, data):
        used = 0
        try:
            while used < len(data) and self._outstanding:
                response = self._outstanding[0]
                try:
                    used += response.feed(data[used:])
                finally:
                    # drop the response as soon as it's done, even if its
                    # on_complete callback blew up
                    if response.completed:
                        self._outstanding.popleft()
                        logger.debug(
                            "Response complete: %d %s",
                            response.status,
                            response.reason.decode("latin-1"),
                        )
        except BaseException:
            # Either the server broke the protocol or a callback raised. In
            # both cases we no longer know where the next response starts.
            self.close()
            raise

        if used < len(data):
            # The server sent more than we asked for. We can't tell what it
            # was, so keep it for inspection and hang up.
            self.trailing_data = bytes(data[used:])
            self.close()
            raise RemoteProtocolError(
                "received {} bytes with no request outstanding".format(
                    len(data) - used
                )
            )

    ################################################################
    # Connection management
    ################################################################

    def _connect(self):
        try:
            self._transport = self._transport_factory(self.host, self.port)
        except OSError as exc:
            self._fail_transport("connect", exc)

    def _fail_transport(self, operation, exc):
        self.close()
        raise TransportError(
            "{} failed for {}:{}: {}".format(operation, self.host, self.port, exc),
            connection=self,
        ) from exc

    def close(self):
        """Close the connection to the server, and discard every response
        still outstanding, without notifying them. A new request will open a
        new connection."""
        if self._outstanding:
            logger.warning(
                "Discarding %d outstanding response(s) on %s:%d",
                len(self._outstanding),
                self.host,
                self.port,
            )
            self._outstanding.clear()
        # a half-built request dies with its response
        self._request_state = IDLE
        self._outgoing_lines = []
        if self._transport is not None:
            transport, self._transport = self._transport, None
            logger.debug("Closing connection to %s:%d", self.host, self.port)
            transport.close()
