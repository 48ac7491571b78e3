"""Decide which upstream bodies are HTML and therefore get rewritten."""

from typing import Optional

from werkzeug.http import parse_options_header

SNIFF_LEN = 512

_WHITESPACE = b"\t\n\x0c\r "

# Tag signatures from the WHATWG MIME sniffing standard; each must be followed
# by a space or ">" to count.
_HTML_SIGNATURES = (
    b"<!DOCTYPE HTML",
    b"<HTML",
    b"<HEAD",
    b"<SCRIPT",
    b"<IFRAME",
    b"<H1",
    b"<DIV",
    b"<FONT",
    b"<TABLE",
    b"<A",
    b"<STYLE",
    b"<TITLE",
    b"<B",
    b"<BODY",
    b"<BR",
    b"<P",
    b"<!--",
)

_EXACT_SIGNATURES = (
    (b"%PDF-", "application/pdf"),
    (b"%!PS-Adobe-", "application/postscript"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"BM", "image/bmp"),
    (b"\x00\x00\x01\x00", "image/x-icon"),
    (b"\x1f\x8b\x08", "application/x-gzip"),
    (b"PK\x03\x04", "application/zip"),
    (b"wOFF", "font/woff"),
    (b"wOF2", "font/woff2"),
    (b"\xfe\xff", "text/plain; charset=utf-16be"),
    (b"\xff\xfe", "text/plain; charset=utf-16le"),
    (b"\xef\xbb\xbf", "text/plain; charset=utf-8"),
)

# Control bytes that mark content as binary rather than text.
_BINARY_BYTES = set(range(0x00, 0x09)) | {0x0B} | set(range(0x0E, 0x1B)) | set(range(0x1C, 0x20))


def sniff(body: bytes) -> str:
    data = body[:SNIFF_LEN]

    stripped = data.lstrip(_WHITESPACE)
    upper = stripped.upper()
    for signature in _HTML_SIGNATURES:
        if upper.startswith(signature) and len(upper) > len(signature):
            if upper[len(signature)] in b" >":
                return "text/html; charset=utf-8"
    if stripped.startswith(b"<?xml"):
        return "text/xml; charset=utf-8"

    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    for signature, media in _EXACT_SIGNATURES:
        if data.startswith(signature):
            return media

    if any(byte in _BINARY_BYTES for byte in data):
        return "application/octet-stream"
    return "text/plain; charset=utf-8"


def media_type(content_type: Optional[str], body: bytes) -> str:
    """Return the bare ``type/subtype`` of a response, sniffing when undeclared."""
    declared = ""
    if content_type:
        declared, _ = parse_options_header(content_type)
    if "/" not in declared:
        declared, _ = parse_options_header(sniff(body))
    return declared.lower()


def is_html(content_type: Optional[str], body: bytes) -> bool:
    return media_type(content_type, body) == "text/html"


def charset(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    _, options = parse_options_header(content_type)
    return options.get("charset") or None
