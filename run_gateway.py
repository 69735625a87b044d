#!/usr/bin/env python3
"""
Run the News Reader service gateway.

Usage:
    python run_gateway.py [--config config.json] [--host 0.0.0.0] [--port 8000]
"""

import argparse
import logging
from pathlib import Path

# Load environment variables first
from dotenv import load_dotenv
load_dotenv(Path(__file__).parent / ".env")

import uvicorn

from newsreader.config import load_config
from newsreader.gateway import create_app


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="News Reader service gateway")
    parser.add_argument("--config", default="config.json")
    parser.add_argument("--host", default=None)
    parser.add_argument("--port", type=int, default=None)
    args = parser.parse_args(argv)

    config = load_config(args.config)
    level = config.get("system.log_level", "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s - %(levelname)s - %(name)s - %(message)s")

    uvicorn.run(
        create_app(config),
        host=args.host or config.get("gateway.host", "127.0.0.1"),
        port=args.port or config.get("gateway.port", 8000),
        log_level=level.lower(),
    )


if __name__ == "__main__":
    main()
