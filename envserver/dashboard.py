"""Flask endpoint exposing the server's statistics counters."""

import logging

from flask import Flask, jsonify

from envserver.stats import ServerStats

logger = logging.getLogger(__name__)


def create_dashboard_app(stats: ServerStats) -> Flask:
    app = Flask(__name__)

    @app.route("/stats")
    def stats_view():
        return jsonify(stats.snapshot())

    @app.route("/health")
    def health():
        return jsonify(status="ok")

    return app


def run_dashboard(app: Flask, host: str, port: int):
    """Run the Flask app (intended for use in a daemon thread)."""
    logger.info("Dashboard running on %s:%d", host, port)
    app.run(host=host, port=port, use_reloader=False)
