from ._util import LocalProtocolError

__all__ = ["LineBuffer"]


# Operations we want to support:
# - take whatever bytes just arrived, starting at some offset, and pull out
#   the next complete line, or stash the partial line until more arrives
# - tell the caller how far into the input it got, so the rest can go to
#   the body reader (or to the next response in the pipeline)
# Goals:
# - never look at a byte twice: we only ever scan the new input for LF, the
#   stashed partial line has already been scanned
# - never buffer more than one line
#
# Lines end at LF. CR bytes are dropped wherever they appear, so "\r\n",
# "\n" and even a stray "\r" in the middle of a line are all tolerated.
#
# The size limit is the same anti-DoS countermeasure as a max header size:
# if a server sends us an endless line, we give up rather than buffering it
# forever.
#
# Some precedents for defaults:
# - node.js: 80 * 1024
# - tomcat: 8 * 1024
# - IIS: 16 * 1024
# - Apache: <8 KiB per line>
DEFAULT_MAX_LINE_SIZE = 16 * 1024


class LineBuffer:
    def __init__(self, max_line_size=DEFAULT_MAX_LINE_SIZE):
        self._data = bytearray()
        self._max_line_size = max_line_size

    def __bool__(self):
        return bool(len(self))

    def __len__(self):
        return len(self._data)

    def __bytes__(self):
        return bytes(self._data)

    def _append(self, data):
        self._data += data.replace(b"\r", b"")
        if len(self._data) > self._max_line_size:
            raise LocalProtocolError(
                "line longer than {} bytes".format(self._max_line_size)
            )

    def maybe_extract_line(self, data, start=0):
        """Consume ``data[start:]`` up to and including the next LF.

        Returns ``(end, line)``: ``end`` is the offset just past what was
        consumed, and ``line`` is the completed line without its terminator,
        or None if the line isn't finished yet (in which case everything was
        consumed and stashed).
        """
        idx = data.find(b"\n", start)
        if idx == -1:
            self._append(data[start:])
            return len(data), None
        self._append(data[start:idx])
        line = bytes(self._data)
        self._data.clear()
        return idx + 1, line

    def clear(self):
        self._data.clear()
