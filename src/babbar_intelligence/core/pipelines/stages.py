"""Stage runner threading ``StageResult`` values through the pipelines."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..errors import PipelineError, PipelineStageError
from ..models import StageResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_stage(
    stage: str,
    fn: Callable[[], Awaitable[T]],
    fallback: Optional[T] = None,
    critical: bool = False,
) -> StageResult[T]:
    """Run one stage and tag its outcome.

    A failing critical stage is ``fatal``; any other failing stage is
    ``degraded`` and carries ``fallback`` as its value.
    """
    try:
        return StageResult.ok(await fn())
    except Exception as exc:
        if critical:
            logger.error("Stage '%s' failed: %s", stage, exc)
            return StageResult.fatal(exc)
        logger.warning("Stage '%s' degraded: %s", stage, exc)
        return StageResult.degraded(fallback, f"{stage} failed: {exc}", PipelineStageError(stage, exc))


def require(result: StageResult[T], pipeline: str, stage: str) -> Any:
    """Value of a stage result, raising ``PipelineError`` when it is fatal."""
    if result.is_fatal:
        raise PipelineError(pipeline, stage, result.error) from result.error
    return result.value
