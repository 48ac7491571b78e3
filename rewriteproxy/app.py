import logging

import httpx
from flask import Flask, Response, redirect, render_template, request

from rewriteproxy import settings
from rewriteproxy.classifier import charset, is_html, media_type
from rewriteproxy.rewriter import RewriteContext, RewriteError, rewrite_html
from rewriteproxy.rules import (
    InvalidRule,
    Rule,
    append_rule,
    compile_rules,
    decode_rules,
    encode_rules,
)
from rewriteproxy.urlcodec import VIEW_PREFIX, InvalidProxyPath, ProxyTarget, decode, encode

logger = logging.getLogger(__name__)

app = Flask(__name__)

client = httpx.Client(
    http2=True,
    follow_redirects=True,
    max_redirects=settings.MAX_REDIRECTS,
    timeout=settings.UPSTREAM_TIMEOUT,
)

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# Headers that would tell the upstream who is really asking.
IDENTITY_HEADERS = {
    "forwarded",
    "via",
    "x-forwarded-for",
    "x-forwarded-host",
    "x-forwarded-port",
    "x-forwarded-prefix",
    "x-forwarded-proto",
    "x-real-ip",
}

REQUEST_SKIP_HEADERS = HOP_BY_HOP_HEADERS | IDENTITY_HEADERS | {"host", "content-length", "accept-encoding"}

RESPONSE_SKIP_HEADERS = HOP_BY_HOP_HEADERS | {
    "content-encoding",
    "content-length",
    "content-security-policy",
    "content-security-policy-report-only",
}


def get_rules():
    return decode_rules(request.cookies.get(settings.RULES_COOKIE))


def strip_rules_cookie(cookie_header):
    kept = []
    for pair in cookie_header.split(";"):
        name = pair.split("=", 1)[0].strip()
        if name and name != settings.RULES_COOKIE:
            kept.append(pair.strip())
    return "; ".join(kept)


def get_forward_headers(target: ProxyTarget):
    skip = set(REQUEST_SKIP_HEADERS)
    for token in request.headers.get("Connection", "").split(","):
        if token.strip():
            skip.add(token.strip().lower())

    headers = []
    for k, v in request.headers.items():
        name = k.lower()
        if name in skip:
            continue
        if name == "cookie":
            v = strip_rules_cookie(v)
            if not v:
                continue
        headers.append((k, v))
    headers.append(("Host", target.host))
    # Ask for an uncompressed body so it can be parsed as-is.
    headers.append(("Accept-Encoding", "identity"))
    return headers


def filter_headers(headers):
    return [(name, value) for name, value in headers.multi_items() if name.lower() not in RESPONSE_SKIP_HEADERS]


def fetch_upstream(target: ProxyTarget) -> httpx.Response:
    """Replay the inbound request against ``target`` and read the whole body."""
    with client.stream(
        request.method,
        target.url,
        headers=get_forward_headers(target),
        content=request.get_data(),
    ) as resp:
        resp.read()
    return resp


def build_response(resp: httpx.Response, content: bytes, rewritten: bool = False) -> Response:
    """Relay ``resp`` with ``content`` as its body.

    Werkzeug sizes the body it is given. The upstream ``Content-Length`` is
    only relayed when that body is the upstream's own bytes, or when there is
    no body at all because the request was a HEAD.
    """
    response = Response(content, status=resp.status_code)
    response.headers.remove("Content-Type")
    for name, value in filter_headers(resp.headers):
        response.headers.add(name, value)

    upstream_length = resp.headers.get("Content-Length")
    decoded = "Content-Encoding" in resp.headers
    if upstream_length is not None and (request.method == "HEAD" or not (rewritten or decoded)):
        response.headers["Content-Length"] = upstream_length
    return response


def get_proxy_path():
    """The inbound path with its percent-escapes intact, when the server exposes it."""
    raw_uri = request.environ.get("RAW_URI")
    if raw_uri:
        raw_path = raw_uri.split("?", 1)[0]
        if raw_path.startswith(request.script_root + VIEW_PREFIX):
            return raw_path[len(request.script_root):], True
    return request.path, False


@app.route("/", methods=["GET", "POST"])
def index():
    rules = get_rules()

    if request.method == "GET":
        url = request.args.get("url")
        if url:
            try:
                return redirect(encode(url if "://" in url or url.startswith("//") else "https://" + url))
            except ValueError as e:
                return Response(f"Invalid URL: {e}", status=400, mimetype="text/plain")
        return render_template("index.html", rules=rules)

    try:
        rule = Rule.create(request.form.get("match", ""), request.form.get("replace", ""))
    except InvalidRule as e:
        logger.info("Rejected rule: %s", e)
        return Response(str(e), status=400, mimetype="text/plain")

    rules = append_rule(rules, rule)
    response = Response(render_template("index.html", rules=rules))
    response.set_cookie(settings.RULES_COOKIE, encode_rules(rules), path="/", httponly=True)
    return response


@app.route("/view/", defaults={"path": ""}, methods=PROXY_METHODS, merge_slashes=False)
@app.route("/view/<path:path>", methods=PROXY_METHODS, merge_slashes=False)
def proxy(path):
    proxy_path, escaped = get_proxy_path()
    try:
        target = decode(proxy_path, request.query_string.decode("latin-1"), escaped=escaped)
    except InvalidProxyPath as e:
        logger.warning("Bad proxy path %r: %s", proxy_path, e)
        return Response(str(e), status=400, mimetype="text/plain")

    logger.info("Proxying %s %s", request.method, target.url)

    try:
        resp = fetch_upstream(target)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.error("Upstream request to %s failed: %r", target.url, e)
        return Response(str(e) or e.__class__.__name__, status=500, mimetype="text/plain")

    content = resp.content
    content_type = resp.headers.get("Content-Type")
    logger.info("Content-Type: %s", media_type(content_type, content))

    rewritten = False
    if request.method != "HEAD" and is_html(content_type, content):
        context = RewriteContext(target.url_prefix, compile_rules(get_rules()))
        try:
            content = rewrite_html(content, context, encoding=charset(content_type))
        except RewriteError as e:
            logger.exception("Rewriting %s failed", target.url)
            return Response(str(e), status=500, mimetype="text/plain")
        rewritten = True

    return build_response(resp, content, rewritten)


def close_client():
    client.close()
