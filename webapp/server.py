"""
Flask Web Server for the post-meeting notetaker.

This is the small web surface around the bot poller:
1. Health checks
2. Polling status (lazily starts the poller) and start/stop control
3. Manual "poll now" trigger for support tooling

Run locally:
    python -m webapp.server

Or with gunicorn:
    gunicorn "webapp.server:build_app_from_env()" --bind 0.0.0.0:8080
"""
from __future__ import annotations

import os
import sys
from datetime import datetime, timezone
from pathlib import Path

from flask import Flask, jsonify, request
from flask_cors import CORS

# Add project root to path
_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from dotenv import load_dotenv
load_dotenv()

from database.adapters import MeetingStore
from postmeet.logutil import log as _log
from postmeet.notetaker.scheduler import PollingScheduler


SERVICE_NAME = "post-meeting-notetaker"


def log(message: str) -> None:
    _log(message, component="server")


def create_app(scheduler: PollingScheduler, store: MeetingStore) -> Flask:
    app = Flask(__name__)
    CORS(app)

    max_attempts = scheduler.config.max_attempts

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({
            "status": "healthy",
            "service": SERVICE_NAME,
            "poller_running": scheduler.is_running,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    # =========================================================================
    # Polling Endpoints
    # =========================================================================

    @app.route("/polling", methods=["GET"])
    def polling_status():
        """Bot statistics; starts the poller on first access."""
        try:
            scheduler.start()
            counts = store.status_counts(max_attempts=max_attempts)
            return jsonify({
                "running": scheduler.is_running,
                "cycle_in_progress": scheduler.cycle_in_progress,
                "counts": counts,
                "recent_activity": store.recent_activity(limit=10),
                "last_cycle": scheduler.last_report.to_json() if scheduler.last_report else None,
            })
        except Exception as e:
            log(f"Error getting polling status: {e}")
            return jsonify({"error": "Internal server error"}), 500

    @app.route("/polling", methods=["POST"])
    def polling_control():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON"}), 400

        action = data.get("action")
        if action == "start":
            scheduler.start()
            message = "Polling service started"
        elif action == "stop":
            scheduler.stop()
            message = "Polling service stopped"
        else:
            return jsonify({"error": 'Invalid action. Use "start" or "stop"'}), 400

        log(message)
        return jsonify({
            "success": True,
            "message": message,
            "running": scheduler.is_running,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    @app.route("/polling/run", methods=["POST"])
    def polling_run():
        """Run one cycle now, through the same guard as the timer."""
        report = scheduler.run_cycle()
        if report is None:
            return jsonify({"skipped": True, "reason": "cycle already in progress"}), 409
        return jsonify(report.to_json())

    return app


def build_app_from_env() -> Flask:
    from database.connection import SessionLocal
    from postmeet.config import PollingConfig, RecallConfig
    from postmeet.notetaker.recall_client import RecallClient

    if SessionLocal is None:
        raise RuntimeError("DATABASE_URL not configured")

    store = MeetingStore(SessionLocal)
    scheduler = PollingScheduler(
        store=store,
        client=RecallClient(RecallConfig.from_env()),
        config=PollingConfig.from_env(),
    )
    return create_app(scheduler, store)


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    log(f"Starting {SERVICE_NAME} server on port {port}")
    build_app_from_env().run(host="0.0.0.0", port=port)
