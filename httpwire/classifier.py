"""Error Classifier - maps transport failures onto the error taxonomy."""

from __future__ import annotations

import logging

from httpwire.errors import NetworkError, RequestError, TransportFailure
from httpwire.models import Request
from httpwire.transport import TransportErrorCode

logger = logging.getLogger(__name__)

# Failures where the peer was never reached or the link broke mid-exchange.
NETWORK_ERROR_CODES = frozenset({
    TransportErrorCode.COULDNT_RESOLVE_PROXY,
    TransportErrorCode.COULDNT_RESOLVE_HOST,
    TransportErrorCode.COULDNT_CONNECT,
    TransportErrorCode.OPERATION_TIMEDOUT,
    TransportErrorCode.SSL_CONNECT_ERROR,
    TransportErrorCode.SEND_ERROR,
    TransportErrorCode.RECV_ERROR,
    TransportErrorCode.PEER_FAILED_VERIFICATION,
})


def classify_failure(failure: TransportFailure, request: Request) -> NetworkError | RequestError:
    """Turn a transport failure into a NetworkError or RequestError.

    The returned error keeps the transport code and message verbatim so the
    diagnostic can be reproduced without dispatching again. The request is
    attached by reference and never modified.
    """
    if failure.code in NETWORK_ERROR_CODES:
        error: NetworkError | RequestError = NetworkError(failure.message, request, failure.code)
    else:
        error = RequestError(failure.message, request, failure.code)

    logger.debug(
        "classified transport failure code=%s as %s for %s %s",
        failure.code, error.kind.value, request.method, request.url,
    )
    return error
