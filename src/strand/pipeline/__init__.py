"""The execution pipeline: the agent turn loop and its per-run state."""

from strand.pipeline.loop import ExecutionPipeline
from strand.pipeline.models import PipelineState, RunContext

__all__ = ["ExecutionPipeline", "PipelineState", "RunContext"]
