"""Keyword-based redaction of sensitive values in filenames and log messages."""

import threading
from typing import Optional
from urllib.parse import unquote

# Text fragments paired with whether they are already redacted
_Parts = list[tuple[str, bool]]


def _substitute(parts: _Parts, source: str, placeholder: str) -> _Parts:
    """Replace ``source`` in the parts that haven't been redacted yet."""
    result: _Parts = []
    for text, redacted in parts:
        if redacted or source not in text:
            result.append((text, redacted))
            continue

        for i, piece in enumerate(text.split(source)):
            if i:
                result.append((placeholder, True))
            if piece:
                result.append((piece, False))
    return result


class Redactor:
    """Replaces registered sensitive strings with placeholders.

    Keyword-based redaction of arbitrary filenames can never be fully
    foolproof, but replacing the longest strings first avoids leaking parts of
    a value through a shorter, overlapping one.
    """

    def __init__(self, lock: Optional[threading.RLock] = None):
        self._lock = lock if lock is not None else threading.RLock()
        self._redactions: dict[str, str] = {}
        self._sorted: list[tuple[str, str]] = []
        self._placeholders: list[str] = []

    def add_redaction(self, source: str, placeholder: str) -> None:
        """Register (or replace) the placeholder for a sensitive string."""
        if not source:
            raise ValueError("Redaction source cannot be empty")

        with self._lock:
            self._redactions[source] = placeholder
            self._sorted = sorted(
                self._redactions.items(), key=lambda item: len(item[0]), reverse=True
            )
            self._placeholders = sorted(
                set(self._redactions.values()), key=len, reverse=True
            )

    def redact(self, msg: str) -> str:
        """Redact all registered strings, longest first.

        Each replacement runs over the output of the previous one. Placeholder
        text, whether inserted here or already present in ``msg``, is never
        matched by a shorter source.
        """
        with self._lock:
            parts: _Parts = [(msg, False)]
            for placeholder in self._placeholders:
                if placeholder:
                    parts = _substitute(parts, placeholder, placeholder)
            for source, placeholder in self._sorted:
                parts = _substitute(parts, source, placeholder)
            return "".join(text for text, _ in parts)

    def redact_uri(self, uri: str) -> str:
        """Percent-decode a URI and redact it."""
        return self.redact(unquote(uri))

    @property
    def redactions(self) -> dict[str, str]:
        with self._lock:
            return dict(self._redactions)


def redact_truncate(msg: str, keep: int = 2) -> str:
    """Hide everything but a few characters at each end of a string.

    Used for strings whose sensitive parts are unknown, such as filenames
    produced by someone else. 'Call recording.m4a' -> 'Ca<...>4a'
    """
    if len(msg) > 2 * keep:
        return f"{msg[:keep]}<...>{msg[-keep:]}"
    return "<...>"
