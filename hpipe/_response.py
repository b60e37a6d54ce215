# The Response class: an incremental parser for a single HTTP/1.x response.
#
# Strategy: bytes come in through feed(), in whatever pieces the network
# happened to deliver. Every state except BODY works on whole lines, so in
# those states we push bytes through a LineBuffer until a line pops out, and
# then dispatch that line on the current state. In BODY we hand slices of the
# input straight to the on_data callback, never copying more than we have to
# and never holding on to body bytes.
#
# feed() returns how many bytes it used. It stops early when the response is
# complete; whatever is left over belongs to the next response on the
# connection.

import logging
import re

from ._headers import (
    HeaderAccumulator,
    Headers,
    is_continuation_line,
    parse_content_length,
)
from ._receivebuffer import DEFAULT_MAX_LINE_SIZE, LineBuffer
from ._state import (
    BODY,
    CHUNK_END,
    CHUNK_LEN,
    COMPLETE,
    ERROR,
    HEADERS,
    STATUS_LINE,
    TRAILERS,
    check_response_transition,
)
from ._util import (
    BadStatusLine,
    LocalProtocolError,
    ProtocolError,
    RemoteProtocolError,
    UnexpectedConnectionClose,
    UnknownProtocol,
    bytesify,
    validate,
)

__all__ = ["Response"]

logger = logging.getLogger("hpipe")

# Only the first 8 bytes of the version token are looked at, so e.g.
# "HTTP/1.1x" is accepted as 1.1.
HTTP_VERSIONS = {b"HTTP/1.0": 10, b"HTTP/1.1": 11}

CONTINUE = 100

#   status-line = HTTP-version SP status-code SP reason-phrase CRLF
#
# We are more lenient than the grammar: any run of whitespace separates the
# fields, and whatever follows the status code is the reason. This pattern
# matches every possible line; the version and status are checked by hand
# afterwards so we can raise the right error.
status_line_re = re.compile(
    rb"\s*(?P<http_version>\S*)\s*(?P<status_code>\S*)\s*(?P<reason>.*)"
)

HEXDIG = rb"[0-9A-Fa-f]"
# Actually
#
#      chunk-size     = 1*HEXDIG
#
# but we impose an upper-limit to avoid ridiculosity. len(str(2**64)) == 20
chunk_size = rb"(%(HEXDIG)s){1,20}" % {b"HEXDIG": HEXDIG}
# Actually
#
#     chunk-ext      = *( ";" chunk-ext-name [ "=" chunk-ext-val ] )
#
# but we aren't parsing the things so we don't really care.
chunk_ext = rb";.*"
chunk_header = (
    rb"[ \t]*"
    rb"(?P<chunk_size>%(chunk_size)s)"
    rb"[ \t]*"
    rb"(?P<chunk_ext>%(chunk_ext)s)?"
    % {b"chunk_size": chunk_size, b"chunk_ext": chunk_ext}
)
chunk_header_re = re.compile(chunk_header)


# RFC 7230's rules for connection lifecycles, as seen from the client:
# - HTTP/1.1 defaults to keep-alive unless the server says Connection: close
# - HTTP/1.0 defaults to close, unless the server says it'll keep the
#   connection alive, which old servers do with either a Keep-Alive: header
#   or Connection: keep-alive.
def _will_close(http_version, headers):
    connection = headers.get_comma_values("connection")
    if http_version == 11:
        return b"close" in connection
    if "keep-alive" in headers or b"keep-alive" in connection:
        return False
    return True


def _body_framing(request_method, status_code, headers):
    # Called when the header block is over, to figure out how the body is
    # delimited. Returns one of:
    #
    #    ("content-length", (count,))
    #    ("chunked", ())
    #    ("http/1.0", ())      <- read until the connection closes
    #
    # Reference: https://tools.ietf.org/html/rfc7230#section-3.3.3
    #
    # Step 1: some responses always have an empty body, regardless of what the
    # headers say. This has to come first: a server answering HEAD with
    # Transfer-Encoding: chunked is describing the GET body it didn't send.
    if (
        status_code in (204, 304)
        or 100 <= status_code < 200
        or request_method == b"HEAD"
    ):
        return ("content-length", (0,))

    # Step 2: check for Transfer-Encoding (T-E beats C-L):
    transfer_encoding = headers.get("transfer-encoding")
    if transfer_encoding is not None:
        if transfer_encoding.strip().lower() == b"chunked":
            return ("chunked", ())

    # Step 3: check for Content-Length
    content_length = headers.get("content-length")
    if content_length is not None:
        return ("content-length", (parse_content_length(content_length),))

    # Step 4: no applicable headers, the body runs until EOF
    return ("http/1.0", ())


class Response:
    """The response to one request sent over a :class:`hpipe.Connection`.

    You don't normally create these yourself: :meth:`Connection.putrequest`
    makes one for every request and feeds it whatever the server sends back.
    Your callbacks receive it as their first argument.

    .. attribute:: method

       The method of the request this is a response to, as a byte string.
       HEAD responses never have a body, so we need to know.

    .. attribute:: context

       Whatever was passed as ``context`` to
       :meth:`Connection.set_callbacks`.

    .. attribute:: bytes_read

       How many body bytes have been delivered to ``on_data`` so far.

    .. attribute:: chunked

       Whether the body uses chunked transfer encoding. Decided when the
       header block ends.

    .. attribute:: content_length

       The announced body length, or -1 if the body runs until the server
       closes the connection (or is chunked).

    .. attribute:: will_close

       Whether we expect the server to close the connection after this
       response. Decided when the header block ends.

    .. attribute:: error

       The :exc:`RemoteProtocolError` this response failed with, if any.

    """

    def __init__(
        self,
        method,
        on_begin=None,
        on_data=None,
        on_complete=None,
        context=None,
        max_line_size=DEFAULT_MAX_LINE_SIZE,
    ):
        self.method = bytesify(method)
        self.context = context
        self._on_begin = on_begin
        self._on_data = on_data
        self._on_complete = on_complete

        self._state = STATUS_LINE
        self._http_version_tag = None
        self._http_version = 0
        self._status = 0
        self._reason = b""
        self._headers = Headers()
        self._header_accum = HeaderAccumulator()
        self._line_buffer = LineBuffer(max_line_size)

        self.bytes_read = 0
        self.chunked = False
        self.chunk_remaining = 0
        self.content_length = -1
        self.will_close = False
        self.error = None
        # a ProtocolError raised by one of our callbacks, not by the parser
        self._callback_error = None

    def __repr__(self):
        if self._http_version_tag is None:
            status = "?"
        else:
            status = "{} {}".format(self._status, self._reason.decode("latin-1"))
        return "<{} {} {} state={}>".format(
            self.__class__.__name__,
            self.method.decode("ascii"),
            status,
            self._state,
        )

    @property
    def state(self):
        return self._state

    @property
    def completed(self):
        return self._state is COMPLETE

    ################################################################
    # Accessors -- only meaningful once the status line is in
    ################################################################

    def _require_status_line(self):
        if self._http_version_tag is None:
            raise LocalProtocolError(
                "status line not received yet (state is {})".format(self._state)
            )

    @property
    def status(self):
        self._require_status_line()
        return self._status

    @property
    def reason(self):
        self._require_status_line()
        return self._reason

    @property
    def http_version(self):
        """10 for HTTP/1.0, 11 for HTTP/1.1."""
        self._require_status_line()
        return self._http_version

    @property
    def http_version_tag(self):
        """The version token exactly as the server sent it, e.g. ``b"HTTP/1.1"``."""
        self._require_status_line()
        return self._http_version_tag

    @property
    def headers(self):
        self._require_status_line()
        return self._headers

    def header(self, name, default=None):
        self._require_status_line()
        return self._headers.get(name, default)

    ################################################################
    # Input
    ################################################################

    def feed(self, data):
        """Parse as much of ``data`` as belongs to this response.

        Fires the callbacks as things happen, and returns the number of bytes
        consumed. That is all of them, unless the response completes partway
        through, in which case the rest is for whoever comes next.

        Raises :exc:`RemoteProtocolError` (or one of its subclasses) if the
        data is malformed; the response is then in state ``ERROR`` for good.
        Anything raised by the callbacks propagates as it is.
        """
        if self._state is COMPLETE:
            raise LocalProtocolError("can't feed data to a completed response")
        if self._state is ERROR:
            raise LocalProtocolError("can't feed data to a failed response")
        if not isinstance(data, (bytes, bytearray)):
            data = bytes(data)
        pos = 0
        end = len(data)
        try:
            while pos < end and self._state is not COMPLETE:
                if self._state is BODY:
                    if self.chunked:
                        pos = self._process_data_chunked(data, pos, end)
                    else:
                        pos = self._process_data_non_chunked(data, pos, end)
                else:
                    pos, line = self._line_buffer.maybe_extract_line(data, pos)
                    if line is not None:
                        self._LINE_HANDLERS[self._state](self, line)
        except ProtocolError as exc:
            if exc is self._callback_error:
                # The caller's own mistake; the data was fine.
                self._callback_error = None
                raise
            self._fail(exc)
            if isinstance(exc, LocalProtocolError):
                exc._reraise_as_remote_protocol_error()
            raise
        return pos

    def notify_connection_closed(self):
        """Tell the response that the server closed the connection.

        For a body with no length and no chunking, this is how it ends. In
        any other unfinished state it means we got cut off, and
        :exc:`UnexpectedConnectionClose` is raised.
        """
        if self._state is COMPLETE:
            return
        if self._state is BODY and not self.chunked and self.content_length == -1:
            self._finish()
            return
        exc = UnexpectedConnectionClose(
            "connection closed unexpectedly (state is {})".format(self._state)
        )
        self._fail(exc)
        raise exc

    ################################################################
    # State machine guts
    ################################################################

    def _set_state(self, new_state):
        check_response_transition(self._state, new_state)
        self._state = new_state

    def _fail(self, exc):
        if self._state not in (COMPLETE, ERROR):
            self._set_state(ERROR)
            self.error = exc
        logger.debug("Response to %s failed: %s", self.method.decode("ascii"), exc)

    def _fire(self, callback, *args):
        if callback is None:
            return
        try:
            callback(self, *args)
        except ProtocolError as exc:
            self._callback_error = exc
            raise

    def _finish(self):
        self._set_state(COMPLETE)
        self._fire(self._on_complete)

    def _reset_status(self):
        self._http_version_tag = None
        self._http_version = 0
        self._status = 0
        self._reason = b""
        self._headers.clear()
        self._header_accum.clear()

    def _process_status_line(self, line):
        match = status_line_re.fullmatch(line)
        http_version_tag = match["http_version"]
        status_code = match["status_code"]
        if not status_code.isdigit() or not 100 <= int(status_code) <= 999:
            raise BadStatusLine("bad status line: {!r}".format(line))
        http_version = HTTP_VERSIONS.get(http_version_tag[:8])
        if http_version is None:
            raise UnknownProtocol(
                "unknown protocol: {!r}".format(http_version_tag)
            )

        self._http_version_tag = http_version_tag
        self._http_version = http_version
        self._status = int(status_code)
        self._reason = match["reason"]
        self._header_accum.clear()
        self._set_state(HEADERS)

    def _process_header_line(self, line):
        if not line:
            # end of headers
            self._header_accum.flush_into(self._headers)
            if self._status == CONTINUE:
                # The real status line is still to come; throw this one away.
                self._reset_status()
                self._set_state(STATUS_LINE)
            else:
                self._begin_body()
        elif is_continuation_line(line):
            self._header_accum.fold(line)
        else:
            self._header_accum.flush_into(self._headers)
            self._header_accum.start(line)

    def _begin_body(self):
        framing_type, args = _body_framing(self.method, self._status, self._headers)
        self.chunked = framing_type == "chunked"
        if framing_type == "content-length":
            self.content_length = args[0]
        else:
            self.content_length = -1
        self.will_close = _will_close(self._http_version, self._headers)
        if framing_type == "http/1.0":
            # Reading until EOF is the only way to find the end of the body.
            self.will_close = True

        self._fire(self._on_begin)

        if self.chunked:
            self.chunk_remaining = 0
            self._set_state(CHUNK_LEN)
        elif self.content_length == 0:
            self._finish()
        else:
            self._set_state(BODY)

    def _process_chunk_len_line(self, line):
        matches = validate(chunk_header_re, line, "illegal chunk header: {!r}", line)
        # XX FIXME: we discard chunk extensions. Does anyone care?
        self.chunk_remaining = int(matches["chunk_size"], base=16)
        if self.chunk_remaining == 0:
            # got the whole body, now skip over any trailing headers
            self._header_accum.clear()
            self._set_state(TRAILERS)
        else:
            self._set_state(BODY)

    def _process_chunk_end_line(self, line):
        if line:
            raise LocalProtocolError(
                "expected CRLF after chunk data, got {!r}".format(line)
            )
        self._set_state(CHUNK_LEN)

    def _process_trailer_line(self, line):
        # Trailers are read and thrown away.
        if not line:
            self._finish()

    def _process_data_chunked(self, data, pos, end):
        count = min(end - pos, self.chunk_remaining)
        self._fire(self._on_data, bytes(data[pos : pos + count]))
        self.bytes_read += count
        self.chunk_remaining -= count
        if self.chunk_remaining == 0:
            # chunk completed! now soak up the CRLF before the next one
            self._set_state(CHUNK_END)
        return pos + count

    def _process_data_non_chunked(self, data, pos, end):
        count = end - pos
        if self.content_length != -1:
            count = min(count, self.content_length - self.bytes_read)
        self._fire(self._on_data, bytes(data[pos : pos + count]))
        self.bytes_read += count
        # Finish if we know we're done, else wait for the connection to close.
        if self.bytes_read == self.content_length:
            self._finish()
        return pos + count

    _LINE_HANDLERS = {
        STATUS_LINE: _process_status_line,
        HEADERS: _process_header_line,
        CHUNK_LEN: _process_chunk_len_line,
        CHUNK_END: _process_chunk_end_line,
        TRAILERS: _process_trailer_line,
    }
