import re

from ._util import LocalProtocolError, bytesify, validate

__all__ = ["Headers"]

# https://svn.tools.ietf.org/svn/wg/httpbis/specs/rfc7230.html#rule.token.separators
#   token          = 1*tchar
#
#   tchar          = "!" / "#" / "$" / "%" / "&" / "'" / "*"
#                  / "+" / "-" / "." / "^" / "_" / "`" / "|" / "~"
#                  / DIGIT / ALPHA
#                  ; any VCHAR, except delimiters
token = rb"[-!#$%&'*+.^_`|~0-9a-zA-Z]+"
token_re = re.compile(token)

# We don't try to police what goes into a header value, except for the one
# thing that lets a caller smuggle extra lines onto the wire.
field_value_re = re.compile(rb"[^\r\n\x00]*")

content_length_re = re.compile(rb"[0-9]+")

# What's whitespace, for the purposes of header folding and value trimming.
# obs-fold is CRLF 1*( SP / HTAB ), but the line splitter has already eaten
# the CRLF by the time we see a continuation line.
WHITESPACE = b" \t"


################################################################
# Received headers
################################################################
#
# Facts:
#
# - Header names are case-insensitive ascii. We store them lower-cased.
# - We keep exactly one value per name. If the server repeats a header, the
#   last one wins. (Set-Cookie is the famous victim of this rule, but we
#   don't do cookies.)
# - Insertion order is kept because dicts keep it, but nothing depends on it.
class Headers:
    """The headers of a received response.

    Behaves like a read-mostly mapping from lower-cased header name to value.
    Lookups accept names in any case, as ``str`` or ``bytes``; values are
    always ``bytes``.

    """

    __slots__ = ("_dict",)

    def __init__(self, initial=()):
        self._dict = {}
        for name, value in initial:
            self[name] = value

    @staticmethod
    def _norm_key(name):
        return bytesify(name).lower()

    def __getitem__(self, name):
        return self._dict[self._norm_key(name)]

    def __setitem__(self, name, value):
        self._dict[self._norm_key(name)] = bytesify(value)

    def __contains__(self, name):
        return self._norm_key(name) in self._dict

    def __iter__(self):
        return iter(self._dict)

    def __len__(self):
        return len(self._dict)

    def __eq__(self, other):
        if isinstance(other, Headers):
            return self._dict == other._dict
        if isinstance(other, dict):
            return self._dict == {
                self._norm_key(k): bytesify(v) for k, v in other.items()
            }
        return NotImplemented

    __hash__ = None

    def __repr__(self):
        return "{}({!r})".format(self.__class__.__name__, list(self.items()))

    def get(self, name, default=None):
        return self._dict.get(self._norm_key(name), default)

    def items(self):
        return self._dict.items()

    def clear(self):
        self._dict.clear()

    def get_comma_values(self, name, *, lowercase=True):
        # Should only be used for headers whose value is a list of
        # comma-separated values, like Connection:. Use lowercase=True for
        # case-insensitive ones.
        raw = self.get(name)
        if raw is None:
            return []
        if lowercase:
            raw = raw.lower()
        values = []
        for value in raw.split(b","):
            value = value.strip()
            if value:
                values.append(value)
        return values


def split_header_field(field):
    # "Content-Type:   text/html" -> (b"content-type", b"text/html")
    #
    # Only the whitespace right after the colon is skipped; whatever the
    # server put at the end of the line is part of the value.
    name, _, value = field.partition(b":")
    return name.lower(), value.lstrip(WHITESPACE)


class HeaderAccumulator:
    """Staging area for the header currently being read.

    A header isn't finished when its line ends, because the next line might
    be an obs-fold continuation of it. So each header line goes in here, and
    gets flushed into the Headers map when the next header starts (or the
    header block ends).

    """

    def __init__(self):
        self._data = bytearray()

    def __bool__(self):
        return bool(self._data)

    def __bytes__(self):
        return bytes(self._data)

    def start(self, line):
        self._data[:] = line

    def fold(self, line):
        if not self._data:
            raise LocalProtocolError("continuation line at start of headers")
        self._data += b" "
        self._data += line.lstrip(WHITESPACE)

    def flush_into(self, headers):
        if not self._data:
            return
        name, value = split_header_field(bytes(self._data))
        headers[name] = value
        self._data.clear()

    def clear(self):
        self._data.clear()


def is_continuation_line(line):
    return line[:1] in (b" ", b"\t")


def parse_content_length(value):
    validate(content_length_re, value.strip(), "bad Content-Length: {!r}", value)
    return int(value)


################################################################
# Outgoing headers
################################################################


def normalize_header_value(value):
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    value = bytesify(value)
    validate(field_value_re, value, "illegal header value {!r}", value)
    return value


def normalize_header_name(name):
    name = bytesify(name)
    validate(token_re, name, "illegal header name {!r}", name)
    return name


def normalize_request_headers(headers):
    # Accepts a mapping or an iterable of (name, value) pairs, and returns a
    # list of (bytes, bytes) pairs with the original name capitalization.
    if headers is None:
        return []
    if hasattr(headers, "items"):
        headers = headers.items()
    return [
        (normalize_header_name(name), normalize_header_value(value))
        for name, value in headers
    ]


def has_header(headers, name):
    name = bytesify(name).lower()
    for found_name, _ in headers:
        if found_name.lower() == name:
            return True
    return False
