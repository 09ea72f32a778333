"""
HTTP Microservice
=================
Flask-based HTTP API for the conversion engine.

Lets an editor front-end post markup and download the generated
document without shelling out to the CLI.

Endpoints:
    POST   /api/convert            → Convert markup to .docx (or JSON model)
    POST   /api/html-to-markdown   → Convert editor HTML back to markup
    GET    /api/presets            → Built-in style presets
    GET    /api/health             → Health check
    GET    /api/info               → Converter version info
"""

from __future__ import annotations

import logging
from io import BytesIO

from flask import Blueprint, Flask, current_app, jsonify, request, send_file
from flask_cors import CORS

from . import __version__
from .engine import ConverterConfig, ConverterEngine
from .html_import import html_to_markup
from .serializer import DocxSerializer
from .styles import PRESETS, StyleConfigError

logger = logging.getLogger(__name__)

DOCX_MIMETYPE = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
)

api = Blueprint("api", __name__, url_prefix="/api")


def create_app(config: dict = None) -> Flask:
    """Create and configure the Flask app."""
    app = Flask(__name__)
    CORS(app)

    app.config.setdefault("MAX_CONTENT_LENGTH", 20 * 1024 * 1024)  # 20MB
    app.config.setdefault("ALLOW_REMOTE_IMAGES", True)
    app.config.setdefault("IMAGE_TIMEOUT", 15.0)
    app.config.setdefault("DOWNLOAD_NAME", "document.docx")
    app.config.setdefault("LOG_LEVEL", "INFO")
    if config:
        app.config.update(config)

    app.register_blueprint(api)
    return app


# ─── Health Check ─────────────────────────────────────────────────────────────


@api.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": "markdocx",
        "version": __version__,
    })


@api.route("/info", methods=["GET"])
def info():
    """Converter version and capability info."""
    return jsonify({
        "version": __version__,
        "engine": "python-docx",
        "capabilities": [
            "headings",
            "emphasis",
            "inline_code",
            "code_blocks",
            "tables",
            "math",
            "block_quotes",
            "images",
            "html_import",
        ],
        "templates": [t.value for t in PRESETS],
        "output_formats": ["docx", "json"],
    })


@api.route("/presets", methods=["GET"])
def presets():
    """Built-in style presets."""
    return jsonify({
        template.value: style.model_dump(mode="json")
        for template, style in PRESETS.items()
    })


# ─── Convert Endpoint ────────────────────────────────────────────────────────


@api.route("/convert", methods=["POST"])
def convert():
    """
    Convert markup into a document.

    JSON body:
        markdown  (str, required)  markup text
        template  (str)            preset name, default "standard"
        style     (dict)           field overrides (all fields for "custom")

    Returns the .docx as an attachment, or the conversion result as JSON
    when called with ?format=json.
    """
    data = request.get_json(silent=True) or {}
    markup = data.get("markdown")
    if not isinstance(markup, str):
        return jsonify({"error": "markdown (string) is required"}), 400

    style_overrides = data.get("style") or {}
    if not isinstance(style_overrides, dict):
        return jsonify({"error": "style must be an object"}), 400

    config = ConverterConfig(
        template=data.get("template") or "standard",
        style_overrides=style_overrides,
        image_timeout=current_app.config["IMAGE_TIMEOUT"],
        allow_remote_images=current_app.config["ALLOW_REMOTE_IMAGES"],
        allow_local_images=False,
        log_level=current_app.config["LOG_LEVEL"],
    )

    try:
        result = ConverterEngine(config).run(markup, source="request")
    except StyleConfigError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.error(f"Conversion failed: {e}")
        return jsonify({"error": str(e)}), 500

    if request.args.get("format") == "json":
        return jsonify(result.model_dump(mode="json")), 200

    try:
        payload = DocxSerializer().serialize(result.document)
    except Exception as e:
        logger.error(f"Serialization failed: {e}")
        return jsonify({"error": str(e)}), 500

    return send_file(
        BytesIO(payload),
        mimetype=DOCX_MIMETYPE,
        as_attachment=True,
        download_name=data.get("filename") or current_app.config["DOWNLOAD_NAME"],
    )


@api.route("/html-to-markdown", methods=["POST"])
def html_to_markdown():
    """Convert editor HTML into markup. JSON body: {"html": "..."}"""
    data = request.get_json(silent=True) or {}
    html = data.get("html")
    if not isinstance(html, str):
        return jsonify({"error": "html (string) is required"}), 400

    return jsonify({"markdown": html_to_markup(html)})


def run_server(
    host: str = "0.0.0.0",
    port: int = 5000,
    debug: bool = False,
):
    """Start the microservice server."""
    app = create_app()
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    run_server(debug=True)
