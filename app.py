import logging
from datetime import datetime, timedelta, timezone

from flask import Flask, jsonify
from flask_cors import CORS

from config import get_settings
from device_repository import DeviceRepository, RepositoryError
from health_engine.dashboard import DashboardAggregator
from status_checker import refresh_device_status

logger = logging.getLogger(__name__)


def create_app(settings=None, aggregator=None):
    settings = settings or get_settings()

    # ---------------------------------
    # App Setup
    # ---------------------------------

    app = Flask(__name__)
    CORS(app)

    if aggregator is None:
        repository = DeviceRepository(
            settings.device_store_path,
            timeout=settings.repository_timeout,
            system_address=settings.system_device_address,
            system_name=settings.system_device_name,
        )
        aggregator = DashboardAggregator(
            repository,
            dedup_window=timedelta(minutes=settings.alert_dedup_minutes),
        )

    app.config["AGGREGATOR"] = aggregator

    # =========================================================
    #  DASHBOARD APIS
    # =========================================================

    @app.route("/api/dashboard/summary", methods=["GET"])
    def api_dashboard_summary():
        try:
            summary = aggregator.get_dashboard_summary()
        except RepositoryError as e:
            logger.error("[API] Dashboard summary failed: %s", e)
            return jsonify({"success": False, "error": str(e)}), 500

        return jsonify(summary.to_dict())

    @app.route("/api/dashboard/health", methods=["GET"])
    def api_dashboard_health():
        try:
            evaluation = aggregator.evaluate()
        except RepositoryError as e:
            logger.error("[API] Health evaluation failed: %s", e)
            return jsonify({"success": False, "error": str(e)}), 500

        return jsonify(evaluation.to_dict())

    @app.route("/api/dashboard/live-metrics", methods=["GET"])
    def api_live_metrics():
        try:
            performance = aggregator.network_performance()
        except RepositoryError as e:
            logger.error("[API] Live metrics failed: %s", e)
            return jsonify({"success": False, "error": str(e)}), 500

        return jsonify({
            "networkPerformance": performance,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    # --------------------------
    # DEVICE STATUS
    # --------------------------

    @app.route("/api/status/refresh", methods=["POST"])
    def api_status_refresh():
        try:
            result = refresh_device_status(
                aggregator.repository,
                count=settings.ping_count,
                timeout=settings.ping_timeout,
            )
        except RepositoryError as e:
            logger.error("[API] Status refresh failed: %s", e)
            return jsonify({"success": False, "error": str(e)}), 500

        return jsonify({"success": True, "devices": result})

    @app.route("/api/ping", methods=["GET"])
    def ping():
        return jsonify({"status": "ok", "time": datetime.now(timezone.utc).isoformat()})

    return app


# --------------------------------------------------
# MAIN
# --------------------------------------------------
if __name__ == "__main__":
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(settings)
    app.run(host=settings.host, port=settings.port, debug=True)
