# The default byte stream underneath a Connection.
#
# A Connection doesn't care what it's talking to, as long as it looks like
# this:
#
#   transport_factory(host, port) -> transport     (connects, or raises OSError)
#   transport.readable(timeout)   -> bool          (never waits longer than timeout)
#   transport.recv(size)          -> bytes         (b"" means the peer closed)
#   transport.sendall(data)                        (all of it, or raises OSError)
#   transport.close()
#
# SocketTransport is that, over a plain TCP socket.

import logging
import select
import socket

from ._logging import TRACE_LOG_LEVEL

__all__ = ["SocketTransport"]

logger = logging.getLogger("hpipe")


class SocketTransport:
    def __init__(self, sock):
        self._sock = sock

    @classmethod
    def connect(cls, host, port, timeout=None):
        logger.debug("Connecting to %s:%d", host, port)
        sock = socket.create_connection((host, port), timeout=timeout)
        return cls(sock)

    def readable(self, timeout=0.0):
        # select() treats None as "wait forever", which is what a caller
        # passing timeout=None asked for.
        ready, _, _ = select.select([self._sock], [], [], timeout)
        return bool(ready)

    def recv(self, size):
        data = self._sock.recv(size)
        logger.log(TRACE_LOG_LEVEL, "Received %d bytes", len(data))
        return data

    def sendall(self, data):
        self._sock.sendall(data)
        logger.log(TRACE_LOG_LEVEL, "Sent %d bytes", len(data))

    def close(self):
        self._sock.close()
