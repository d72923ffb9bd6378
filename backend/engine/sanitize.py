"""Guards for untrusted strings: upstream records and model output.

The API serves JSON, so untrusted text leaves the server unescaped.
``escape_html`` is the render-time helper for whatever turns that JSON into
markup; the server itself only uses the URL, address and text guards.
"""
import re
from typing import Optional

SOLANA_ADDRESS_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f\s]+")

_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#39;",
}


def escape_html(value) -> str:
    """Escape the five HTML-significant characters. ``None`` renders as ``""``."""
    if value is None:
        return ""
    return "".join(_HTML_ESCAPES.get(ch, ch) for ch in str(value))


def sanitize_url(value) -> Optional[str]:
    if not value or not isinstance(value, str):
        return None
    url = value.strip()
    if url.startswith("http://") or url.startswith("https://"):
        return url
    return None


def is_valid_solana_address(value) -> bool:
    if not isinstance(value, str):
        return False
    return bool(SOLANA_ADDRESS_RE.match(value))


def clean_text(value, limit: int) -> str:
    """Collapse control characters and whitespace runs, then truncate to ``limit``."""
    if value is None:
        return ""
    text = _CONTROL_RE.sub(" ", str(value)).strip()
    return text[:limit]
