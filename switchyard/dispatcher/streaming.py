"""
Streaming relay.

Forwards a live upstream event stream to the caller byte-for-byte. Once
the first byte is out, failures can no longer become a JSON error, so
they are logged and the stream simply ends. The upstream connection is
closed however the relay finishes, including client disconnects.
"""

import logging
from typing import AsyncIterator

from switchyard.dispatcher.handlers import UpstreamStream

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def relay_stream(stream: UpstreamStream, request_id: str) -> AsyncIterator[bytes]:
    """
    Yield upstream chunks unmodified.

    Args:
        stream: Open upstream stream
        request_id: Request id for log lines

    Yields:
        Raw upstream bytes
    """
    forwarded = 0
    try:
        async for chunk in stream.iter_bytes():
            forwarded += len(chunk)
            yield chunk
    except Exception as e:
        logger.error(
            f"[{request_id}] Upstream stream failed after {forwarded} bytes, closing: {e}"
        )
    finally:
        await stream.aclose()
        logger.debug(f"[{request_id}] Stream closed after {forwarded} bytes")
