# rivalscope/routes/health.py
from __future__ import annotations

from quart import Blueprint, current_app, jsonify

from rivalscope.utils.helper import utc_now_iso
from rivalscope.utils.logger import get_logger


health_bp = Blueprint("health", __name__)
logger = get_logger(__name__)


def overall_status(report: dict) -> str:
    healthy = sum(1 for info in report.values() if info.get("healthy"))
    if healthy == len(report):
        return "healthy"
    return "degraded" if healthy else "unhealthy"


@health_bp.get("/api/health")
async def health():
    """Status collaborator AI / search / scrape."""
    app = current_app
    report = await app.extensions["runner"].health()
    status = overall_status(report)
    if status != "healthy":
        logger.warning("[health] %s | %s", status, report)

    body = {
        "status": status,
        "services": report,
        "missingKeys": app.extensions["service_configs"].missing_keys(),
        "timestamp": utc_now_iso(),
    }
    return jsonify(body), (503 if status == "unhealthy" else 200)
