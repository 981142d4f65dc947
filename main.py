"""
KPSS Parser Service — Main Entry Point
======================================
Starts the Flask read API over the artifacts in the output directory.

Usage:
    python main.py                          # Default: 0.0.0.0:5000, ./parsed_data
    python main.py --port 8000              # Custom port
    python main.py --output /srv/kpss       # Serve another artifact directory
    python main.py --debug                  # Debug mode
"""

import argparse
import logging

from kpss_parser.engine import LOG_DATE_FORMAT, LOG_FORMAT, ParserConfig
from kpss_parser.server import create_app

logging.basicConfig(
    level=logging.INFO,
    format=LOG_FORMAT,
    datefmt=LOG_DATE_FORMAT,
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="KPSS Parser Service")
    parser.add_argument("--host", default="0.0.0.0", help="Bind host")
    parser.add_argument("--port", type=int, default=5000, help="Bind port")
    parser.add_argument("--output", default="parsed_data", help="Artifact directory")
    parser.add_argument("--workers", type=int, default=4, help="Ingest worker threads")
    parser.add_argument("--debug", action="store_true", help="Debug mode")
    args = parser.parse_args()

    config = ParserConfig(output_dir=args.output, workers=args.workers)

    # create_app() loads any artifacts already in the output directory
    logger.info(f"Creating Flask app over {args.output}...")
    app = create_app(config=config)

    logger.info(f"Starting server on {args.host}:{args.port}")
    app.run(host=args.host, port=args.port, debug=args.debug)


if __name__ == "__main__":
    main()
