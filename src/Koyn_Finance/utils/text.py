"""Small text-cleaning helpers shared by the news and social pipelines."""

import html
import re

_CDATA = re.compile(r"\[\[CDATA\[(.*?)\]\]>", re.DOTALL)
_TAG = re.compile(r"<[^>]*>")
_WHITESPACE = re.compile(r"\s+")


def strip_html(text: str | None) -> str:
    """Decode entities, drop tags and CDATA wrappers, collapse whitespace."""
    if not text:
        return ""
    decoded = html.unescape(_CDATA.sub(r"\1", text))
    return _WHITESPACE.sub(" ", _TAG.sub("", decoded)).strip()
