"""Flask application entry point and route definitions for jobmap."""

import asyncio
import threading
from typing import Optional, Tuple

from flask import Flask, jsonify, request

from .models.db import PER_PAGE_MAX, LoadError, logger
from .models.service import JobsService


def create_app(service: Optional[JobsService] = None) -> Flask:
    """Instantiate and configure the Flask application."""
    app = Flask(__name__)
    app.config.update(PER_PAGE_MAX=PER_PAGE_MAX)
    jobs = service or JobsService.from_config()
    app.extensions["jobs_service"] = jobs
    # One loader at a time; each retry runs on its own event loop.
    init_lock = threading.Lock()

    def _ensure_loaded() -> bool:
        """Initialize the jobs service if needed; False when loading failed."""
        if jobs.ready:
            return True
        with init_lock:
            if jobs.ready:
                return True
            try:
                asyncio.run(jobs.init())
            except LoadError as exc:
                logger.warning("Jobs load failed: %s", exc)
                return False
        return True

    _ensure_loaded()

    def _resolve_pagination(default_per_page: int = 50) -> Tuple[int, int]:
        """Return (page, per_page_limit) constrained to safe bounds."""
        per_page_raw = request.args.get("per_page", default=default_per_page, type=int) or default_per_page
        per_page = max(1, min(per_page_raw, int(app.config.get("PER_PAGE_MAX", 100))))
        page_raw = request.args.get("page", default=1, type=int) or 1
        page = max(1, page_raw)
        return page, per_page

    @app.errorhandler(404)
    def handle_not_found(_error):
        return jsonify({"error": "not found"}), 404

    @app.errorhandler(500)
    def handle_server_error(error):
        logger.exception("Unhandled error", exc_info=error)
        return jsonify({"error": "internal error"}), 500

    @app.get("/api/jobs")
    def api_jobs():
        """Return display jobs as JSON with pagination metadata."""
        if not _ensure_loaded():
            return jsonify({"error": "jobs_unavailable"}), 503
        query = request.args.get("q") or request.args.get("query") or ""
        location = request.args.get("location")
        if location is not None and not location.strip():
            location = None
        page, per_page = _resolve_pagination()
        offset = (page - 1) * per_page

        result = jobs.query(query, location, limit=per_page, offset=offset)
        return jsonify(
            {
                "items": [job.to_dict() for job in result.items],
                "meta": {
                    "page": page,
                    "per_page": per_page,
                    "total": result.total,
                    "has_more": len(result.items) == per_page,
                },
            }
        )

    @app.get("/health")
    def health():
        """Expose a readiness probe reporting whether jobs are loaded."""
        if not jobs.ready:
            return jsonify({"status": "error", "jobs": "not loaded"}), 503
        return jsonify({"status": "ok", "jobs": jobs.job_count()}), 200

    return app


if __name__ == "__main__":
    application = create_app()
    application.run(debug=True)
