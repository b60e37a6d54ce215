import collections

from .._connection import Connection
from .._response import Response


# Merges adjacent data events, so that the same body delivered in different
# pieces compares equal.
def normalize_data_events(in_events):
    out_events = []
    for event in in_events:
        if out_events and out_events[-1][0] == event[0] == "data":
            out_events[-1] = ("data", out_events[-1][1] + event[1])
        else:
            out_events.append(event)
    return out_events


class Recorder:
    """Callbacks that write down what happened, in order."""

    def __init__(self):
        self.events = []

    def on_begin(self, response):
        self.events.append(("begin", response.status))

    def on_data(self, response, data):
        assert type(data) is bytes
        self.events.append(("data", data))

    def on_complete(self, response):
        self.events.append(("complete", response.status))

    def callbacks(self):
        return {
            "on_begin": self.on_begin,
            "on_data": self.on_data,
            "on_complete": self.on_complete,
        }

    @property
    def body(self):
        return b"".join(event[1] for event in self.events if event[0] == "data")

    def normalized(self):
        return normalize_data_events(self.events)


def make_response(method="GET", recorder=None, **kwargs):
    if recorder is None:
        recorder = Recorder()
    return Response(method, **recorder.callbacks(), **kwargs), recorder


def feed_all(response, data, step=None):
    # Feeds data in pieces of `step` bytes (all at once if None), and returns
    # the total number of bytes the response used.
    if step is None:
        step = max(len(data), 1)
    used = 0
    for i in range(0, len(data), step):
        if response.completed:
            break
        used += response.feed(data[i : i + step])
    return used


class FakeTransport:
    """An in-memory stand-in for a socket.

    Tests put whatever the "server" says into .incoming (b"" means the server
    hangs up), and find whatever we wrote in .sent.
    """

    def __init__(self, host, port):
        self.host = host
        self.port = port
        self.incoming = collections.deque()
        self.sent = bytearray()
        self.closed = False
        self.fail_recv = False
        self.fail_send = False
        self.readable_calls = []

    def readable(self, timeout=0.0):
        self.readable_calls.append(timeout)
        return bool(self.incoming) or self.fail_recv

    def recv(self, size):
        if self.fail_recv:
            raise ConnectionResetError("connection reset by peer")
        data = self.incoming[0]
        if len(data) > size:
            self.incoming[0] = data[size:]
            return data[:size]
        self.incoming.popleft()
        return data

    def sendall(self, data):
        assert not self.closed
        if self.fail_send:
            raise BrokenPipeError("broken pipe")
        self.sent += data

    def close(self):
        self.closed = True


class FakeNetwork:
    """A transport factory handing out FakeTransports."""

    def __init__(self):
        self.transports = []
        self.refuse = False

    def __call__(self, host, port):
        if self.refuse:
            raise ConnectionRefusedError("connection refused")
        transport = FakeTransport(host, port)
        self.transports.append(transport)
        return transport

    @property
    def transport(self):
        return self.transports[-1]


def make_connection(host="example.com", port=80, recorder=None, **kwargs):
    if recorder is None:
        recorder = Recorder()
    network = FakeNetwork()
    conn = Connection(host, port, transport_factory=network, **kwargs)
    conn.set_callbacks(**recorder.callbacks())
    return conn, network, recorder


def pump_until_done(conn, limit=10000):
    for _ in range(limit):
        if not conn.outstanding():
            return
        conn.pump()
    raise AssertionError("connection still has outstanding responses")
