"""Process-wide dispatch pipeline.

The queue worker has no request scope to build a pipeline in, so the
application configures one at startup and tasks look it up here.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dispatch_service.features.notifications.pipeline import DispatchPipeline

logger = logging.getLogger(__name__)

# Module-level singleton
_pipeline: DispatchPipeline | None = None


def configure_dispatch_pipeline(pipeline: DispatchPipeline) -> DispatchPipeline:
    """Install ``pipeline`` as the process-wide pipeline.

    Call this during application and worker startup. Configuring again
    replaces the previous pipeline.
    """
    global _pipeline
    if _pipeline is not None:
        logger.warning("Replacing configured dispatch pipeline")
    _pipeline = pipeline
    return pipeline


def get_dispatch_pipeline() -> DispatchPipeline:
    """Get the process-wide pipeline.

    Raises:
        RuntimeError: If no pipeline was configured.
    """
    if _pipeline is None:
        msg = "Dispatch pipeline not configured. Call configure_dispatch_pipeline() during startup."
        raise RuntimeError(msg)
    return _pipeline


def reset_dispatch_pipeline() -> None:
    """Forget the configured pipeline (for tests)."""
    global _pipeline
    _pipeline = None
