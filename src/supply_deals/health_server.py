"""
Health check and metrics HTTP server.

Liveness and readiness probes for the supply desk, a detailed health view
with projection counts, and the Prometheus metrics on /metrics.
"""

import argparse
import sqlite3
from pathlib import Path
from typing import Any

from flask import Flask, Response, jsonify
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from supply_deals import __version__
from supply_deals.desk import SupplyDesk
from supply_deals.kernel.logging import configure_logging, get_logger

logger = get_logger(__name__)

app = Flask(__name__)

# Global state - will be set by initialize_health_server()
_db_path: Path | None = None
_desk: SupplyDesk | None = None


def initialize_health_server(db_path: str | Path, desk: SupplyDesk | None = None) -> None:
    """
    Initialize the health server with the database path and, optionally, a desk.

    Args:
        db_path: Path to SQLite database
        desk: SupplyDesk whose projections feed the detailed health view
    """
    global _db_path, _desk
    _db_path = Path(db_path)
    _desk = desk
    logger.info("Health server initialized", db_path=str(_db_path))


@app.route("/health/live", methods=["GET"])
def liveness() -> tuple[Response, int]:
    """Liveness probe - the process is up."""
    return jsonify({"status": "alive", "service": "supply-deals"}), 200


@app.route("/health/ready", methods=["GET"])
def readiness() -> tuple[Response, int]:
    """
    Readiness probe - the event store can be queried.

    Returns:
        200 with the event count when ready, 503 otherwise
    """
    if _db_path is None:
        logger.error("Readiness check failed: DB path not initialized")
        return jsonify({"status": "not_ready", "reason": "database_path_not_initialized"}), 503

    if not _db_path.exists():
        logger.error("Readiness check failed: DB file does not exist", db_path=str(_db_path))
        return (
            jsonify(
                {
                    "status": "not_ready",
                    "reason": "database_file_not_found",
                    "db_path": str(_db_path),
                }
            ),
            503,
        )

    try:
        conn = sqlite3.connect(str(_db_path), timeout=1.0)
        try:
            event_count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.error("Readiness check failed: DB error", error=str(e))
        return (
            jsonify(
                {
                    "status": "not_ready",
                    "reason": "database_operational_error",
                    "error": str(e),
                }
            ),
            503,
        )

    logger.debug("Readiness check passed", event_count=event_count)
    return jsonify({"status": "ready", "database": "accessible", "event_count": event_count}), 200


@app.route("/health", methods=["GET"])
def detailed_health() -> tuple[Response, int]:
    """
    Detailed health check - database stats plus desk counts when available.
    """
    health_data: dict[str, Any] = {
        "status": "healthy",
        "service": "supply-deals",
        "version": __version__,
    }

    if _db_path and _db_path.exists():
        try:
            conn = sqlite3.connect(str(_db_path), timeout=1.0)
            try:
                event_count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
                stream_count = conn.execute(
                    "SELECT COUNT(DISTINCT stream_id) FROM events"
                ).fetchone()[0]
                page_count = conn.execute("PRAGMA page_count").fetchone()[0]
                page_size = conn.execute("PRAGMA page_size").fetchone()[0]
            finally:
                conn.close()

            health_data["database"] = {
                "status": "healthy",
                "path": str(_db_path),
                "event_count": event_count,
                "stream_count": stream_count,
                "size_mb": round((page_count * page_size) / (1024 * 1024), 2),
            }
        except sqlite3.Error as e:
            logger.error("Database health check failed", error=str(e))
            health_data["database"] = {"status": "unhealthy", "error": str(e)}
            health_data["status"] = "degraded"
    else:
        health_data["database"] = {"status": "not_initialized"}
        health_data["status"] = "degraded"

    if _desk is not None:
        stats = _desk.health_stats()
        health_data["marketplace"] = {
            "users": stats["users"],
            "commitments": stats["commitments"],
            "requirements": {k: v for k, v in stats["requirements"].items() if v},
            "offers": {k: v for k, v in stats["offers"].items() if v},
        }

    status_code = 200 if health_data["status"] == "healthy" else 503
    return jsonify(health_data), status_code


@app.route("/metrics", methods=["GET"])
def metrics() -> Response:
    """Prometheus text exposition of every registered metric"""
    return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)


def run_health_server(port: int = 8080, debug: bool = False) -> None:
    """
    Run the health check server.

    Args:
        port: Port to listen on (default: 8080)
        debug: Enable Flask debug mode (default: False)
    """
    logger.info("Starting health check server", port=port)
    app.run(host="0.0.0.0", port=port, debug=debug)


def main() -> None:
    parser = argparse.ArgumentParser(description="Supply Deals health and metrics server")
    parser.add_argument("--db", type=str, default=".supply.db", help="Database path")
    parser.add_argument("--port", type=int, default=8080, help="Port to listen on")
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )
    parser.add_argument("--json-logs", action="store_true", help="Output logs as JSON")
    args = parser.parse_args()

    configure_logging(json_output=args.json_logs, log_level=args.log_level)
    initialize_health_server(args.db, SupplyDesk(args.db))
    run_health_server(port=args.port)


if __name__ == "__main__":
    main()
