"""
HTTP Service
============
Flask-based read API over the current pipeline snapshot.

The served data is an immutable Snapshot. An ingest run builds a new one
and swaps the reference under a lock, so readers always see one complete
run, never a half-merged one.

Endpoints:
    GET    /api/health           → Health check
    GET    /api/info             → Parser version and snapshot summary
    GET    /api/qualifications   → qualifications.json contract records
    GET    /api/positions        → positions.json contract records
    POST   /api/ingest           → Run the pipeline over uploaded PDFs
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from . import __version__
from . import storage
from .engine import ParserConfig, ParserEngine
from .models import Snapshot

logger = logging.getLogger(__name__)


class SnapshotHolder:
    """The snapshot currently being served."""

    def __init__(self, snapshot: Optional[Snapshot] = None):
        self._snapshot = snapshot or Snapshot()
        self._lock = threading.Lock()

    def get(self) -> Snapshot:
        with self._lock:
            return self._snapshot

    def swap(self, snapshot: Snapshot) -> Snapshot:
        """Replace the served snapshot; returns the previous one."""
        with self._lock:
            previous, self._snapshot = self._snapshot, snapshot
        return previous


def create_app(
    snapshot: Optional[Snapshot] = None,
    config: Optional[ParserConfig] = None,
) -> Flask:
    """
    Create and configure the Flask app.

    Without an explicit snapshot, the artifacts already present in
    ``config.output_dir`` are served (or an empty snapshot if there are none).
    """
    config = config or ParserConfig()

    if snapshot is None:
        try:
            snapshot = storage.load_snapshot(config.output_dir)
            logger.info(f"Serving artifacts from {config.output_dir}")
        except FileNotFoundError:
            logger.info(f"No artifacts in {config.output_dir}; starting empty")
        except ValueError as e:
            logger.warning(f"Ignoring unreadable artifacts: {e}")

    app = Flask(__name__)
    CORS(app)
    app.config.setdefault("MAX_CONTENT_LENGTH", 200 * 1024 * 1024)  # 200MB

    holder = SnapshotHolder(snapshot)
    ingest_lock = threading.Lock()
    app.extensions["kpss_snapshot"] = holder

    # ─── Health Check ────────────────────────────────────────────────────

    @app.route("/api/health", methods=["GET"])
    def health():
        """Health check endpoint."""
        current = holder.get()
        return jsonify({
            "status": "healthy",
            "service": "kpss-parser",
            "version": __version__,
            "qualifications": len(current.qualifications),
            "positions": len(current.positions),
        })

    @app.route("/api/info", methods=["GET"])
    def info():
        """Parser version and snapshot summary."""
        current = holder.get()
        return jsonify({
            "version": __version__,
            "engine": "PyMuPDF",
            "snapshot_created_at": current.created_at,
            "summary": current.summary(),
            "validation": current.validation.model_dump(),
        })

    # ─── Records ─────────────────────────────────────────────────────────

    @app.route("/api/qualifications", methods=["GET"])
    def qualifications():
        return jsonify(holder.get().qualification_records())

    @app.route("/api/positions", methods=["GET"])
    def positions():
        return jsonify(holder.get().position_records())

    # ─── Ingest ──────────────────────────────────────────────────────────

    @app.route("/api/ingest", methods=["POST"])
    def ingest():
        """
        Run the pipeline over uploaded bulletins and serve the result.

        Accepts multipart/form-data with one or more ``files`` parts.
        Files are merged in the order they were uploaded.
        """
        uploads = request.files.getlist("files")
        if not uploads:
            return jsonify({"error": "No files uploaded (field: files)"}), 400

        sources = []
        for upload in uploads:
            filename = storage.sanitize_filename(upload.filename or "")
            if not filename:
                return jsonify({"error": "Upload without a filename"}), 400
            sources.append((filename, upload.read()))

        # One run at a time; readers keep the old snapshot meanwhile
        if not ingest_lock.acquire(blocking=False):
            return jsonify({"error": "An ingest run is already in progress"}), 409
        try:
            new_snapshot = ParserEngine(config).run(sources)
        finally:
            ingest_lock.release()

        holder.swap(new_snapshot)
        logger.info(
            f"Snapshot replaced: {len(new_snapshot.qualifications)} qualifications, "
            f"{len(new_snapshot.positions)} positions"
        )
        return jsonify(new_snapshot.summary()), 200

    return app


# ─── Run Server ──────────────────────────────────────────────────────────────


def run_server(
    host: str = "0.0.0.0",
    port: int = 5000,
    debug: bool = False,
    config: Optional[ParserConfig] = None,
):
    """Start the HTTP service."""
    app = create_app(config=config)
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    run_server(debug=True)
