"""
markdocx Conversion Service: Main Entry Point
=============================================
Starts the Flask-based conversion microservice.

Usage:
    python main.py                    # Default: 0.0.0.0:5000
    python main.py --port 8000        # Custom port
    python main.py --debug            # Debug mode
    python main.py --no-remote-images # Never fetch http(s) images
"""

import argparse
import logging

from markdocx.server import create_app

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)-8s %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="markdocx Conversion Service")
    parser.add_argument("--host", default="0.0.0.0", help="Bind host")
    parser.add_argument("--port", type=int, default=5000, help="Bind port")
    parser.add_argument("--debug", action="store_true", help="Debug mode")
    parser.add_argument(
        "--no-remote-images",
        action="store_true",
        help="Replace http(s) images with placeholders instead of fetching",
    )
    parser.add_argument("--image-timeout", type=float, default=15.0, help="Image fetch timeout (s)")
    args = parser.parse_args()

    app = create_app({
        "ALLOW_REMOTE_IMAGES": not args.no_remote_images,
        "IMAGE_TIMEOUT": args.image_timeout,
    })

    logger.info(f"Remote images: {'disabled' if args.no_remote_images else 'enabled'}")
    logger.info(f"Starting server on {args.host}:{args.port}")
    app.run(host=args.host, port=args.port, debug=args.debug)


if __name__ == "__main__":
    main()
