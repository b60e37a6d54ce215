################################################################
# The state machines
################################################################
#
# Rule 1: every state and every legal transition lives here in this file, as
# tables. The code in _connection.py and _response.py decides *when* to move,
# but it has to ask this file whether the move is allowed.
#
# Rule 2: this file knows nothing about bytes. It doesn't parse anything.
#
#
# Theory of operation
# ===================
#
# There are two independent machines.
#
# 1) The request-building machine, one per Connection. It only tracks whether
#    we are in the middle of writing a request head:
#
#        IDLE --putrequest--> REQUEST_STARTED --endheaders--> IDLE
#
#    putheader() is only legal in REQUEST_STARTED.
#
# 2) The response-reading machine, one per Response. It starts in STATUS_LINE
#    and ends in COMPLETE. Most states consume one line at a time; BODY
#    consumes raw bytes:
#
#        STATUS_LINE -> HEADERS
#        HEADERS     -> HEADERS | STATUS_LINE (after 100 Continue)
#                       | BODY | CHUNK_LEN | COMPLETE (zero-length body)
#        BODY        -> BODY | CHUNK_END (chunked) | COMPLETE
#        CHUNK_END   -> CHUNK_LEN
#        CHUNK_LEN   -> BODY | TRAILERS
#        TRAILERS    -> TRAILERS | COMPLETE
#
#    Any non-terminal state can also go to ERROR, which is where a response
#    ends up after it raised a RemoteProtocolError. Neither COMPLETE nor ERROR
#    has a way out.

from ._util import LocalProtocolError, make_sentinel

# Everything in __all__ gets re-exported as part of the hpipe public API.
__all__ = [
    "IDLE",
    "REQUEST_STARTED",
    "STATUS_LINE",
    "HEADERS",
    "BODY",
    "CHUNK_LEN",
    "CHUNK_END",
    "TRAILERS",
    "COMPLETE",
    "ERROR",
]

IDLE = make_sentinel("IDLE")
REQUEST_STARTED = make_sentinel("REQUEST_STARTED")

STATUS_LINE = make_sentinel("STATUS_LINE")
HEADERS = make_sentinel("HEADERS")
BODY = make_sentinel("BODY")
CHUNK_LEN = make_sentinel("CHUNK_LEN")
CHUNK_END = make_sentinel("CHUNK_END")
TRAILERS = make_sentinel("TRAILERS")
COMPLETE = make_sentinel("COMPLETE")
ERROR = make_sentinel("ERROR")

REQUEST_TRANSITIONS = {
    IDLE: {"putrequest": REQUEST_STARTED},
    REQUEST_STARTED: {
        "putheader": REQUEST_STARTED,
        "endheaders": IDLE,
    },
}

RESPONSE_TRANSITIONS = {
    STATUS_LINE: {HEADERS},
    HEADERS: {HEADERS, STATUS_LINE, BODY, CHUNK_LEN, COMPLETE},
    BODY: {BODY, CHUNK_END, COMPLETE},
    CHUNK_END: {CHUNK_LEN},
    CHUNK_LEN: {BODY, TRAILERS},
    TRAILERS: {TRAILERS, COMPLETE},
    COMPLETE: set(),
    ERROR: set(),
}


def next_request_state(state, action):
    try:
        return REQUEST_TRANSITIONS[state][action]
    except KeyError:
        raise LocalProtocolError(
            "can't {}() when request state is {}".format(action, state)
        ) from None


def check_response_transition(old_state, new_state):
    if new_state is ERROR and old_state not in (COMPLETE, ERROR):
        return
    if new_state not in RESPONSE_TRANSITIONS[old_state]:
        raise LocalProtocolError(
            "illegal response transition {} -> {}".format(old_state, new_state)
        )
