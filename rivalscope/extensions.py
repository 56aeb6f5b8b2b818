# rivalscope/extensions.py
from __future__ import annotations

from typing import Any, Callable, Dict

from quart import Quart

from .config import ServiceConfigs
from .utils.logger import get_logger
from .services.analysis.supervisor import AnalysisRunner
from .services.cache.analysis_cache import AnalysisCache
from .services.clients.ai_client import AIClient
from .services.clients.scrape_client import ScrapeClient
from .services.clients.search_client import SearchClient
from .services.jobs.job_queue import JobQueue


def _resolve(overrides: Dict[str, Any], name: str, build: Callable[[], Any]) -> Any:
    # cek None, bukan truthiness: AnalysisCache kosong bernilai False (__len__ == 0)
    value = overrides.get(name)
    return build() if value is None else value


async def init_extensions(app: Quart, **overrides: Any) -> None:
    """Initialise collaborators, runner, cache and job queue on ``app.extensions``.

    Any of ``service_configs``, ``ai_client``, ``search_client``,
    ``scrape_client``, ``runner``, ``cache`` or ``job_queue`` may be passed
    in ``overrides`` (tests inject fakes this way); the rest are built from
    the environment.
    """

    logger = get_logger(__name__)

    service_configs: ServiceConfigs = _resolve(overrides, "service_configs", ServiceConfigs)
    app.extensions["service_configs"] = service_configs

    missing = service_configs.missing_keys()
    if missing:
        # tidak fatal: health check akan melaporkan collaborator yang belum siap
        logger.warning("API key belum di-set: %s", ", ".join(missing))

    ai_client = _resolve(overrides, "ai_client", lambda: AIClient(service_configs))
    search_client = _resolve(overrides, "search_client", lambda: SearchClient(service_configs))
    scrape_client = _resolve(overrides, "scrape_client", lambda: ScrapeClient(service_configs))
    app.extensions["ai_client"] = ai_client
    app.extensions["search_client"] = search_client
    app.extensions["scrape_client"] = scrape_client
    logger.info(
        "Collaborators initialised (quick=%s, synthesis=%s)",
        service_configs.quick_model,
        service_configs.synthesis_model,
    )

    runner = _resolve(
        overrides,
        "runner",
        lambda: AnalysisRunner(ai_client, search_client, scrape_client, service_configs),
    )
    app.extensions["runner"] = runner

    cache = _resolve(
        overrides, "cache", lambda: AnalysisCache(service_configs.cache_ttl_seconds)
    )
    app.extensions["cache"] = cache
    app.extensions["job_queue"] = _resolve(
        overrides,
        "job_queue",
        lambda: JobQueue(
            runner,
            cache,
            keep_completed=service_configs.jobs_keep_completed,
            keep_failed=service_configs.jobs_keep_failed,
        ),
    )
    logger.info("Runner, cache & job queue initialised")


async def shutdown_extensions(app: Quart) -> None:
    """Clean up all asynchronous extensions on application shutdown."""
    logger = get_logger(__name__)

    job_queue = app.extensions.get("job_queue")
    if job_queue is not None:
        await job_queue.shutdown()

    for name in ("ai_client", "search_client", "scrape_client"):
        client = app.extensions.get(name)
        aclose = getattr(client, "aclose", None)
        if aclose is not None:
            await aclose()
            logger.info("%s closed", name)
