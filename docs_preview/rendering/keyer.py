"""Content addressing for diagram sources."""

import hashlib
import re

from ..types import DiagramKey

_KEY_PATTERN = re.compile(r"^[0-9a-f]{64}$")


def diagram_key(source: str | bytes) -> DiagramKey:
    """Return the SHA-256 hex digest identifying a diagram source.

    Text is encoded as UTF-8 first, so ``diagram_key("A")`` and
    ``diagram_key(b"A")`` agree.
    """
    data = source.encode("utf-8") if isinstance(source, str) else source
    return hashlib.sha256(data).hexdigest()


def is_diagram_key(value: str) -> bool:
    """Check whether a string has the shape of a diagram key."""
    return bool(_KEY_PATTERN.match(value))
