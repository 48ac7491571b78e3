"""Mapping between real URLs and the proxy's ``/view/<scheme>/<host>/<path>`` space."""

import logging
import posixpath
from dataclasses import dataclass
from urllib.parse import quote, urlsplit

logger = logging.getLogger(__name__)

VIEW_PREFIX = "/view/"
SCHEMES = {"http", "https"}

# RFC 3986 pchar plus "/", so already-legal characters survive re-quoting.
_PATH_SAFE = "/:@!$&'()*+,;="


class InvalidProxyPath(ValueError):
    pass


@dataclass(frozen=True)
class ProxyTarget:
    scheme: str
    host: str
    path: str = "/"
    query: str = ""
    fragment: str = ""

    @property
    def url(self) -> str:
        url = f"{self.scheme}://{self.host}{self.path}"
        if self.query:
            url += f"?{self.query}"
        if self.fragment:
            url += f"#{self.fragment}"
        return url

    @property
    def url_prefix(self) -> str:
        return f"{VIEW_PREFIX}{self.scheme}/{self.host}/"


def encode(url: str) -> str:
    """Return the proxy path for an absolute (or protocol-relative) URL."""
    parsed = urlsplit(url)
    host = parsed.netloc.rpartition("@")[2]
    if not host:
        raise ValueError(f"URL has no host: {url!r}")
    scheme = parsed.scheme or "https"

    path = parsed.path
    if path.startswith("/"):
        path = path[1:]

    proxy_path = f"{VIEW_PREFIX}{scheme}/{host}/{path}"
    if parsed.query:
        proxy_path += f"?{parsed.query}"
    if parsed.fragment:
        proxy_path += f"#{parsed.fragment}"
    return proxy_path


def decode(proxy_path: str, raw_query: str = "", fragment: str = "", escaped: bool = False) -> ProxyTarget:
    """Rebuild the upstream target from an inbound ``/view/...`` path.

    ``proxy_path`` is the percent-decoded request path, or the raw one when
    ``escaped`` is set, in which case its escapes (``%2F`` and the like) are
    kept as they are. ``raw_query`` is attached verbatim.
    """
    parts = proxy_path.split("/")
    if len(parts) < 4 or parts[1] != VIEW_PREFIX.strip("/"):
        raise InvalidProxyPath(
            f"expected {VIEW_PREFIX}<scheme>/<host>/<path>, got {proxy_path!r}"
        )

    scheme = parts[2].lower()
    host = parts[3]
    if scheme not in SCHEMES:
        raise InvalidProxyPath(f"unsupported scheme {parts[2]!r}")
    if not host:
        raise InvalidProxyPath(f"missing host in {proxy_path!r}")

    path = quote("/" + "/".join(parts[4:]), safe=_PATH_SAFE + "%" if escaped else _PATH_SAFE)
    return ProxyTarget(scheme, host, path, raw_query, fragment)


def resolve_relative(href: str, url_prefix: str) -> str:
    """Map an attribute value found in a page back into the proxy's space.

    Absolute and protocol-relative URLs are re-encoded, root-relative ones are
    joined under ``url_prefix``; everything else is returned as-is.
    """
    lowered = href.lower()
    if lowered.startswith(("http://", "https://", "//")):
        try:
            return encode(href)
        except ValueError:
            logger.debug("Leaving unparsable URL %r untouched", href)
            return href

    if href.startswith("/"):
        return _join_rooted(url_prefix, href)

    return href


def _join_rooted(url_prefix: str, href: str) -> str:
    path, sep, rest = _split_suffix(href)

    # Normalizing as a rooted path keeps ".." from climbing out of the prefix.
    normalized = posixpath.normpath(path)
    if normalized.startswith("//"):
        normalized = "/" + normalized.lstrip("/")
    if path.endswith("/") and normalized != "/":
        normalized += "/"

    joined = url_prefix.rstrip("/") + normalized
    return joined + sep + rest


def _split_suffix(href: str):
    """Split ``href`` into path and the query/fragment tail."""
    cut = len(href)
    for marker in ("?", "#"):
        index = href.find(marker)
        if index != -1:
            cut = min(cut, index)
    if cut == len(href):
        return href, "", ""
    return href[:cut], href[cut], href[cut + 1:]
