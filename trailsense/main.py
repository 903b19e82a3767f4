"""
TrailSense entry point: serve the ingestion API or replay stored relay data.
"""

import argparse
import logging

from .config import load_settings
from .replay import load_records, replay

logger = logging.getLogger("trailsense")


def serve(config_path: str, host: str = None, port: int = None) -> None:
    import uvicorn

    from .api.server import create_app

    settings = load_settings(config_path)
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    app = create_app(settings)
    host = host or settings.host
    port = port or settings.port
    logger.info("Webhook at http://%s:%s/webhook/golioth, events at ws://%s:%s/ws", host, port, host, port)
    uvicorn.run(app, host=host, port=port, log_level="warning")


def main(argv=None) -> int:
    p = argparse.ArgumentParser(description="TrailSense - detection telemetry ingestion")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("serve", help="Run the webhook and WebSocket server")
    s.add_argument("--config", default="config.yaml", help="YAML config path")
    s.add_argument("--host", default=None)
    s.add_argument("--port", type=int, default=None)

    r = sub.add_parser("replay", help="POST stored stream records to the webhook")
    r.add_argument("file", help="JSON array or JSON-lines file of stream records")
    r.add_argument("--url", default="http://localhost:3000/webhook/golioth")
    r.add_argument("--secret", default="", help="Webhook shared secret")
    r.add_argument("--delay", type=int, default=100, help="Milliseconds between requests")
    r.add_argument("--dry-run", action="store_true", help="Print envelopes instead of sending")

    args = p.parse_args(argv)
    if args.command == "serve":
        serve(args.config, host=args.host, port=args.port)
        return 0

    logging.basicConfig(level=logging.INFO)
    stats = replay(load_records(args.file), args.url, secret=args.secret, delay_ms=args.delay, dry_run=args.dry_run)
    return 1 if stats.failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
