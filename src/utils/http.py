def read_content_length(headers) -> int | None:
    """Body size from ``Content-Length``; None when the header is unusable.

    A missing header means an empty body. Negative and non-numeric values are
    rejected so the caller can answer 400 without touching the socket.
    """
    raw = headers.get("Content-Length")
    if raw is None:
        return 0
    try:
        length = int(raw)
    except ValueError:
        return None
    return length if length >= 0 else None
