"""Error raised by the secret and hash primitives."""


class CryptoError(Exception):
    """Malformed input or failed integrity check in a crypto primitive."""
