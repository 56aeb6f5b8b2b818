"""
Analysis core for RivalScope.

This package sequences the multi-step research work done for every
competitor in a run (query generation, web search, URL prioritization,
scraping and report synthesis), streams ordered progress events over a
per-run channel, tracks spend through a run-scoped cost ledger and
enforces the run deadline.
"""

__all__ = [
    "channel",
    "errors",
    "events",
    "orchestrator",
    "pipeline",
    "prioritizer",
    "prompts",
    "supervisor",
]
