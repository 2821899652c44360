#!/usr/bin/env python3
"""
Run the skills API with uvicorn.

Usage:
  python scripts/serve.py
  python scripts/serve.py --port 8080 --auto-refresh
"""

from __future__ import annotations

import argparse
import logging
import os

import uvicorn

from skills_api.core.config import LOG_FORMAT, load_settings


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve the skills API.")
    parser.add_argument("--host", default=None, help="Bind address (default: HOST or 0.0.0.0).")
    parser.add_argument("--port", type=int, default=None, help="Port (default: PORT or 3456).")
    parser.add_argument(
        "--auto-refresh",
        action="store_true",
        help="Start the periodic refresh timer on startup.",
    )
    parser.add_argument("--reload", action="store_true", help="Reload on code changes.")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    if args.auto_refresh:
        os.environ["AUTO_REFRESH"] = "true"
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format=LOG_FORMAT,
    )
    uvicorn.run(
        "skills_api.api.main:create_app",
        factory=True,
        host=args.host or settings.host,
        port=args.port or settings.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
