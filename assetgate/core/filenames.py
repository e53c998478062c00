"""Content-Disposition formatting for non-ASCII filenames."""

import re
from urllib.parse import quote

_UNSAFE_ASCII = re.compile(r'[^\x20-\x7e]|["\\]')


def ascii_fallback(filename: str) -> str:
    """Replace anything outside printable ASCII (and quotes) with ``_``."""
    return _UNSAFE_ASCII.sub("_", filename) or "download"


def content_disposition(filename: str, disposition: str = "attachment") -> str:
    """Build an RFC 5987 header with both ``filename`` and ``filename*``."""
    return (
        f'{disposition}; filename="{ascii_fallback(filename)}"; '
        f"filename*=UTF-8''{quote(filename, safe='')}"
    )
