import pytest

from rewriteproxy.classifier import charset, is_html, media_type, sniff


@pytest.mark.parametrize(
    "header, expected",
    [
        ("text/html", "text/html"),
        ("text/html; charset=ISO-8859-1", "text/html"),
        ("TEXT/HTML; Charset=utf-8", "text/html"),
        ("application/json", "application/json"),
        ("application/xhtml+xml", "application/xhtml+xml"),
    ],
)
def test_declared_type_wins(header, expected):
    assert media_type(header, b"<html></html>") == expected


@pytest.mark.parametrize("header", [None, "", "garbage"])
def test_missing_or_unparsable_header_sniffs(header):
    assert media_type(header, b"  <!DOCTYPE html><html></html>") == "text/html"


@pytest.mark.parametrize(
    "body, expected",
    [
        (b"<html><body></body></html>", "text/html; charset=utf-8"),
        (b"\n\t<p>hi</p>", "text/html; charset=utf-8"),
        (b"<!-- note -->", "text/html; charset=utf-8"),
        (b"<?xml version='1.0'?><a/>", "text/xml; charset=utf-8"),
        (b"\x89PNG\r\n\x1a\n\x00\x00", "image/png"),
        (b"GIF89a...", "image/gif"),
        (b"\xff\xd8\xff\xe0", "image/jpeg"),
        (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
        (b"%PDF-1.7", "application/pdf"),
        (b'{"a": 1}', "text/plain; charset=utf-8"),
        (b"\x00\x01\x02binary", "application/octet-stream"),
        (b"<pre>", "text/plain; charset=utf-8"),
    ],
)
def test_sniff(body, expected):
    assert sniff(body) == expected


def test_only_plain_html_is_rewritable():
    assert is_html("text/html; charset=utf-8", b"")
    assert not is_html("application/xhtml+xml", b"<html></html>")
    assert not is_html("application/json", b"<html></html>")


def test_charset():
    assert charset("text/html; charset=ISO-8859-1") == "ISO-8859-1"
    assert charset("text/html") is None
    assert charset(None) is None
