import asyncio

from rivalscope.models.schemas import AnalysisRequest, Competitor
from rivalscope.services.analysis.channel import ProgressChannel
from rivalscope.services.analysis.events import CompleteEvent, ErrorEvent, TimeoutEvent
from rivalscope.services.analysis.orchestrator import TIMED_OUT_ERROR, RunState
from rivalscope.services.analysis.supervisor import DeadlineSupervisor
from rivalscope.services.costs.ledger import CostLedger

from conftest import FakeAI, FakeScraper, StubPipeline, drain, make_orchestrator, make_runner


def _setup(delay=0.0, fail_names=()):
    ledger = CostLedger()
    channel = ProgressChannel("sup")
    pipeline = StubPipeline(ledger, delay=delay, fail_names=fail_names)
    orchestrator = make_orchestrator(pipeline, ledger, channel)
    return pipeline, orchestrator, channel


async def test_completes_before_deadline() -> None:
    _, orchestrator, channel = _setup()
    supervisor = DeadlineSupervisor(5)
    competitors = [Competitor(name="Acme")]

    outcome = await supervisor.supervise(orchestrator, orchestrator.run(competitors))
    events = await drain(channel)

    assert outcome.state is RunState.COMPLETED
    assert isinstance(events[-1], CompleteEvent)
    assert not any(isinstance(e, TimeoutEvent) for e in events)


async def test_timeout_cancels_in_flight_work_by_default() -> None:
    pipeline, orchestrator, channel = _setup(delay=10)
    supervisor = DeadlineSupervisor(0.05)
    competitors = [Competitor(name="Acme"), Competitor(name="Globex")]

    outcome = await supervisor.supervise(orchestrator, orchestrator.run(competitors))
    events = await drain(channel)

    assert outcome.state is RunState.TIMED_OUT
    assert pipeline.cancelled == ["Acme"]
    assert pipeline.finished == []

    timeout = events[-1]
    assert isinstance(timeout, TimeoutEvent)
    assert timeout.progress == -1
    assert "0/2" in timeout.message
    # satu entri per kompetitor, yang belum selesai ditandai timeout
    records = timeout.data["competitors"]
    assert [r["competitor"]["name"] for r in records] == ["Acme", "Globex"]
    assert all(r["metadata"]["error"] == TIMED_OUT_ERROR for r in records)
    assert channel.close_reason == "timeout"


async def test_timeout_without_cancellation_abandons_the_run() -> None:
    pipeline, orchestrator, channel = _setup(delay=0.2)
    supervisor = DeadlineSupervisor(0.05, cancel_on_timeout=False)
    competitors = [Competitor(name="Acme")]

    outcome = await supervisor.supervise(orchestrator, orchestrator.run(competitors))
    assert outcome.state is RunState.TIMED_OUT

    # run tetap berjalan sampai selesai, tapi event-nya dibuang
    for _ in range(50):
        if pipeline.finished:
            break
        await asyncio.sleep(0.02)
    await asyncio.sleep(0.05)

    assert pipeline.finished == ["Acme"]
    assert pipeline.cancelled == []
    assert channel.dropped > 0
    assert orchestrator.state is RunState.TIMED_OUT

    events = await drain(channel)
    assert isinstance(events[-1], TimeoutEvent)
    assert not any(isinstance(e, CompleteEvent) for e in events)


async def test_fatal_error_emits_error_event_and_closes() -> None:
    _, orchestrator, channel = _setup()
    supervisor = DeadlineSupervisor(5)

    async def broken_run():
        raise RuntimeError("ledger unavailable")

    outcome = await supervisor.supervise(orchestrator, broken_run())
    events = await drain(channel)

    assert outcome.state is RunState.FAILED
    assert outcome.error == "ledger unavailable"
    assert isinstance(events[-1], ErrorEvent)
    assert events[-1].progress == -1
    assert "ledger unavailable" in events[-1].message
    assert channel.close_reason == "error"


async def test_runner_end_to_end_with_fake_collaborators(settings) -> None:
    runner = make_runner(settings, scraper=FakeScraper(fail={"https://news.example.com/acme-products"}))
    request = AnalysisRequest(
        competitors=[Competitor(name="Acme"), Competitor(name="Globex")],
    )
    run = runner.start(request)
    events = await drain(run.channel)
    outcome = await run.outcome()

    assert outcome.state is RunState.COMPLETED
    assert outcome.summary.successful_analyses == 2
    assert events[0].progress == 5
    assert events[-1].type == "complete"
    assert outcome.summary.total_cost == run.ledger.total_cost
    progress = [e.progress for e in events]
    assert progress == sorted(progress)


async def test_runner_health_and_preflight(settings) -> None:
    runner = make_runner(settings, ai=FakeAI(healthy=False))
    report = await runner.health()
    assert report["ai"]["healthy"] is False
    assert report["search"]["healthy"] is True

    failures = await runner.preflight()
    assert failures == ["ai: LLM_API_KEY is not configured"]
