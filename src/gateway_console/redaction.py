_MASK = "********"
_REVEAL = 4


def redact(secret: str | None) -> str:
    """Mask a secret for logging.

    Short values (8 chars or fewer) are fully masked; longer ones keep the
    first and last 4 characters, e.g. ``abcd...ghij``.
    """
    if not secret or len(secret) <= 2 * _REVEAL:
        return _MASK
    return f"{secret[:_REVEAL]}...{secret[-_REVEAL:]}"
