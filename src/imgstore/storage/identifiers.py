"""Opaque identifier generation for blob handles and stored file stems."""

from __future__ import annotations

import uuid


def new_id() -> str:
    """Return a new random identifier.

    32 lowercase hex characters from a UUID4: no path separators, no leading
    dot, safe to concatenate directly into a file name.
    """
    return uuid.uuid4().hex
