import os

BIND = os.environ.get("REWRITE_PROXY_BIND", ":8080")
UPSTREAM_TIMEOUT = float(os.environ.get("REWRITE_PROXY_TIMEOUT", "300"))
MAX_REDIRECTS = int(os.environ.get("REWRITE_PROXY_MAX_REDIRECTS", "10"))
RULES_COOKIE = os.environ.get("REWRITE_PROXY_RULES_COOKIE", "rules")
LOG_LEVEL = os.environ.get("REWRITE_PROXY_LOG_LEVEL", "INFO").upper()
