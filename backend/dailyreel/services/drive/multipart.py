"""multipart/related bodies for Drive uploads"""
import json
import secrets
import time
from typing import Any, Dict, Optional, Tuple


def make_boundary() -> str:
    """Boundary marker with a millisecond timestamp and a random suffix"""
    return f"-------dailyreel-boundary-{int(time.time() * 1000)}-{secrets.token_hex(8)}"


def build_multipart_related(
    metadata: Dict[str, Any],
    payload: bytes,
    mime_type: str,
    boundary: Optional[str] = None
) -> Tuple[bytes, str]:
    """Build a metadata part followed by a binary part

    Args:
        metadata: Drive file metadata (name, mimeType, parents, appProperties)
        payload: File bytes
        mime_type: Content type of the binary part
        boundary: Fixed boundary; generated (and regenerated on collision) when omitted

    Returns:
        (body, content_type header value)

    Raises:
        ValueError: If a fixed boundary occurs inside the payload
    """
    if boundary is None:
        boundary = make_boundary()
        while boundary.encode() in payload:
            boundary = make_boundary()
    elif boundary.encode() in payload:
        raise ValueError("Boundary marker occurs inside the payload")

    head = (
        f"--{boundary}\r\n"
        f"Content-Type: application/json; charset=UTF-8\r\n\r\n"
        f"{json.dumps(metadata)}\r\n"
        f"--{boundary}\r\n"
        f"Content-Type: {mime_type}\r\n\r\n"
    ).encode()
    tail = f"\r\n--{boundary}--".encode()

    return head + payload + tail, f"multipart/related; boundary={boundary}"
