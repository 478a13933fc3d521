import secrets


def make_payload(size: int) -> bytes:
    """Return ``size`` random bytes, shared read-only by every operation of a run."""
    if size < 0:
        raise ValueError(f"payload size must not be negative, got {size}")
    return secrets.token_bytes(size)
