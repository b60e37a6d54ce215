# Code to write the request head
#
# We don't buffer requests as a whole: the Connection collects the head one
# line at a time (putrequest, putheader, ...) as plain byte strings, and
# write_request_head() glues them together when endheaders() is called. The
# body, if any, goes to the transport as-is.

import re

from ._headers import normalize_header_name, normalize_header_value, token_re
from ._util import bytesify, validate

__all__ = ["write_request_line", "write_header_line", "write_request_head"]

# request-target is complicated (see RFC 7230 sec 5.3) -- could be path, full
# URL, host+port (for connect), or even "*", but in any case we are guaranteed
# that it contains no spaces or control characters (see sec 3.1.1).
request_target_re = re.compile(rb"[\x21-\x7e\x80-\xff]+")


def write_request_line(method, url):
    method = bytesify(method)
    validate(token_re, method, "illegal method {!r}", method)
    url = bytesify(url)
    validate(request_target_re, url, "illegal request target {!r}", url)
    return b"%s %s HTTP/1.1" % (method, url)


def write_header_line(name, value):
    return b"%s: %s" % (normalize_header_name(name), normalize_header_value(value))


def write_request_head(lines):
    # Every line, including the blank one at the end, gets its own CRLF.
    return b"".join(line + b"\r\n" for line in lines)
