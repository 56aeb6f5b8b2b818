# rivalscope/routes/jobs.py
from __future__ import annotations

from quart import Blueprint, current_app, jsonify

from rivalscope.utils.logger import get_logger


jobs_bp = Blueprint("jobs", __name__)
logger = get_logger(__name__)


@jobs_bp.get("/api/jobs/<job_id>/status")
async def job_status(job_id: str):
    status = current_app.extensions["job_queue"].status(job_id)
    if status is None:
        logger.info("[jobs] status for unknown job=%s", job_id)
        return jsonify({"error": "Job not found", "jobId": job_id}), 404
    return jsonify(status), 200
