"""
Text normalization applied before anything is embedded in a card.
"""

import re

_SCRIPT_BLOCK = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
# Lowercase HTML tag names only; generic-type syntax such as List<String> survives
_HTML_TAG_NAMES = (
    "a|abbr|b|big|blockquote|body|br|button|center|code|del|div|em|font|form|h[1-6]|head|hr|html|"
    "i|iframe|img|input|ins|label|li|link|meta|ol|p|pre|s|small|span|strike|strong|sub|sup|"
    "table|tbody|td|textarea|th|thead|title|tr|tt|u|ul"
)
_HTML_TAG = re.compile(rf"</?(?:{_HTML_TAG_NAMES})(?:\s[^<>]*)?/?>")
# Everything below 0x20 except tab and newline, plus DEL and C1 controls
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f-\x9f]")
_BLANK_RUN = re.compile(r"\n{3,}")


def fold_newlines(text: str) -> str:
    """Turn escaped and CRLF line breaks into plain newlines."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return text.replace("\\n", "\n")


def strip_html(text: str) -> str:
    text = _SCRIPT_BLOCK.sub("", text)
    return _HTML_TAG.sub("", text)


def sanitize_markdown(text: str) -> str:
    """
    Normalize text destined for a markdown element.

    Newlines are folded, raw HTML and script/style blocks are dropped,
    control characters are removed and runs of blank lines collapse to one.
    """
    if not text:
        return ""
    text = fold_newlines(text)
    text = strip_html(text)
    text = _CONTROL_CHARS.sub("", text)
    text = _BLANK_RUN.sub("\n\n", text)
    return text.strip()


def sanitize_plain(text: str) -> str:
    """Like sanitize_markdown, and also drops markdown quoting for plain text blocks."""
    text = sanitize_markdown(text)
    return text.replace('\\"', '"')
