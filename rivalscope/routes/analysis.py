# rivalscope/routes/analysis.py
from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Dict, Tuple

from pydantic import ValidationError
from quart import Blueprint, Response, current_app, jsonify, make_response, request

from rivalscope.config import ServiceConfigs
from rivalscope.models.schemas import AnalysisOptions, AnalysisRequest, BusinessContext
from rivalscope.services.analysis.errors import AnalysisValidationError
from rivalscope.services.analysis.events import EVENT_TYPES, ErrorEvent
from rivalscope.services.analysis.orchestrator import prepare_competitors
from rivalscope.services.analysis.supervisor import AnalysisRun
from rivalscope.services.cache.analysis_cache import analysis_cache_key
from rivalscope.services.jobs.job_queue import estimate_analysis_time
from rivalscope.utils.helper import sse_data
from rivalscope.utils.logger import get_logger


analysis_bp = Blueprint("analysis", __name__)
logger = get_logger(__name__)

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
KEEP_ALIVE = b": keep-alive\n\n"
END_OF_STREAM = b"event: end\ndata: {}\n\n"
ANALYSIS_MODE = "standard"


# =====================================================
# Parsing input
# =====================================================
def _maybe_json(value: Any, field: str) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        raise AnalysisValidationError(f"{field} must be valid JSON")


def parse_analysis_request(payload: Dict[str, Any], settings: ServiceConfigs) -> AnalysisRequest:
    """
    Body JSON/form → ``AnalysisRequest``.
    ``competitors`` dan ``options`` boleh berupa string JSON (form upload);
    ``businessContext`` berupa string bebas dianggap ringkasan.
    """
    competitors_raw = _maybe_json(payload.get("competitors"), "competitors")
    if not isinstance(competitors_raw, list):
        raise AnalysisValidationError("competitors must be a non-empty list")
    competitors = prepare_competitors(competitors_raw, settings.max_competitors)

    context_raw = payload.get("businessContext") or {}
    if isinstance(context_raw, str):
        try:
            context_raw = json.loads(context_raw)
        except ValueError:
            context_raw = {"summary": context_raw}
    if not isinstance(context_raw, dict):
        context_raw = {"summary": str(context_raw)}

    options_raw = _maybe_json(payload.get("options") or {}, "options")
    if not isinstance(options_raw, dict):
        raise AnalysisValidationError("options must be an object")
    options_raw = {"maxDocuments": settings.max_documents, **options_raw}

    try:
        return AnalysisRequest(
            competitors=competitors,
            business_context=BusinessContext.model_validate(context_raw),
            options=AnalysisOptions.model_validate(options_raw),
        )
    except ValidationError as e:
        raise AnalysisValidationError(f"Invalid request: {e.errors()[0].get('msg')}")


async def _read_payload() -> Dict[str, Any]:
    if request.mimetype == "application/json":
        data = await request.get_json(silent=True)
        if not isinstance(data, dict):
            raise AnalysisValidationError("Request body must be a JSON object")
        return data
    form = await request.form
    return form.to_dict()


def _single_record(payload: Dict[str, Any], status: int) -> Tuple[Response, int]:
    return Response(sse_data(payload), status=status, headers=SSE_HEADERS), status


# =====================================================
# Streaming
# =====================================================
async def _stream_events(run: AnalysisRun, keep_alive: float) -> AsyncIterator[bytes]:
    sent = 0
    try:
        while True:
            try:
                event = await run.channel.next_event(timeout=keep_alive)
            except asyncio.TimeoutError:
                yield KEEP_ALIVE
                continue
            if event is None:
                break
            sent += 1
            yield sse_data(event.to_json_dict()).encode("utf-8")
        yield END_OF_STREAM
    finally:
        # consumer pergi sebelum run selesai: channel ditutup, run tetap berjalan
        if run.channel.close("stream_closed"):
            logger.info("[analysis] stream closed early | run=%s | sent=%d", run.run_id, sent)


@analysis_bp.post("/api/analyze-stream")
async def analyze_stream():
    app = current_app
    settings: ServiceConfigs = app.extensions["service_configs"]
    runner = app.extensions["runner"]

    # ----------------------------
    # 1) Validasi input
    # ----------------------------
    try:
        payload = await _read_payload()
        analysis_request = parse_analysis_request(payload, settings)
    except AnalysisValidationError as e:
        logger.info("[analysis] invalid request: %s", e)
        return jsonify({"error": str(e)}), 400

    names = [c.name for c in analysis_request.competitors]
    logger.info("[analysis] POST /api/analyze-stream | competitors=%s", names)

    # ----------------------------
    # 2) Mode antrean
    # ----------------------------
    if request.args.get("queue", "").lower() == "true":
        cache = app.extensions["cache"]
        key = analysis_cache_key(
            names, analysis_request.business_context.to_json_dict(), ANALYSIS_MODE
        )
        cached = cache.get(key)
        if cached is not None:
            logger.info("[analysis] cache hit | key=%s", key)
            return jsonify({"cached": True, "cacheKey": key, "result": cached}), 200

        job = app.extensions["job_queue"].enqueue(analysis_request, key)
        return (
            jsonify(
                {
                    "jobId": job.job_id,
                    "pollUrl": f"/api/jobs/{job.job_id}/status",
                    "estimatedTime": estimate_analysis_time(len(names), ANALYSIS_MODE),
                    "queuePosition": app.extensions["job_queue"].position(job.job_id),
                }
            ),
            202,
        )

    # ----------------------------
    # 3) Pre-flight collaborator
    # ----------------------------
    if settings.preflight_health_checks:
        failures = await runner.preflight()
        if failures:
            logger.warning("[analysis] health check failed: %s", failures)
            return _single_record(
                {"error": "Service health check failed", "details": failures}, 503
            )

    # ----------------------------
    # 4) Mulai run & stream
    # ----------------------------
    try:
        run = runner.start(analysis_request)
    except AnalysisValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.exception("[analysis] failed to start run")
        return _single_record(
            ErrorEvent(message=f"Failed to start analysis: {e}").to_json_dict(), 500
        )

    response = await make_response(
        _stream_events(run, settings.keep_alive_seconds), 200, SSE_HEADERS
    )
    response.timeout = None
    return response


@analysis_bp.get("/api/analyze-stream")
async def analyze_stream_info():
    settings: ServiceConfigs = current_app.extensions["service_configs"]
    return jsonify(
        {
            "endpoint": "/api/analyze-stream",
            "method": "POST",
            "description": "Run competitive intelligence analysis with live progress over Server-Sent Events",
            "body": {
                "competitors": "list of {name, website?, description?}",
                "businessContext": "object describing your business (optional)",
                "options": {
                    "skipWebsiteScraping": "bool",
                    "maxDocuments": f"int, default {settings.max_documents}",
                    "includeNews": "bool",
                },
            },
            "query": {"queue": "true to enqueue as a background job instead of streaming"},
            "maxCompetitors": settings.max_competitors,
            "timeoutSeconds": settings.analysis_timeout_seconds,
            "events": list(EVENT_TYPES),
        }
    )
