import argparse
import logging

from rewriteproxy import settings


def parse_bind(bind):
    """Split ``host:port``; an empty host means every interface."""
    host, _, port = bind.rpartition(":")
    if not port.isdigit():
        raise argparse.ArgumentTypeError(f"invalid bind address {bind!r}")
    return host.strip("[]") or "0.0.0.0", int(port)


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="rewriteproxy",
        description="HTML-rewriting proxy. Browse http://<bind>/view/<scheme>/<host>/<path>",
    )
    parser.add_argument(
        "--bind",
        type=parse_bind,
        default=settings.BIND,
        help=f"the address to bind to (default: {settings.BIND})",
    )
    parser.add_argument("--debug", action="store_true", help="enable Flask debug mode")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from rewriteproxy.app import app, close_client

    host, port = args.bind
    logging.getLogger(__name__).info("Listening on %s:%d...", host, port)
    try:
        app.run(host=host, port=port, debug=args.debug, threaded=True)
    finally:
        close_client()


if __name__ == "__main__":
    main()
