"""Pipeline orchestration and CLI."""

from briefing.pipeline.orchestrator import DigestPipeline, RunContext

__all__ = ["DigestPipeline", "RunContext"]
