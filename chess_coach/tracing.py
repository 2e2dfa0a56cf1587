# chess_coach/tracing.py

"""
tracing
~~~~~~~

This module provides components for application-wide traceability and
context-aware logging.
"""

import contextlib
import functools
import uuid
from dataclasses import asdict, dataclass
from typing import Any, Callable, Iterator

import structlog

logger = structlog.get_logger(__name__)

@dataclass(frozen=True, slots=True)
class CorrelationID:
    """A unique identifier for a single unit of work, such as one analysis run."""
    run_id: str
    task: str

    @classmethod
    def new(cls, task: str) -> "CorrelationID":
        return cls(run_id=uuid.uuid4().hex[:12], task=task)

    @property
    def short_id(self) -> str:
        """A short, human-readable version of the full ID."""
        return f"{self.task}:{self.run_id}"

    def as_dict(self) -> dict:
        """Returns the ID as a dictionary suitable for logging."""
        return asdict(self)


@contextlib.contextmanager
def bound_correlation(correlation_id: CorrelationID) -> Iterator[CorrelationID]:
    """Binds the correlation ID into structlog's contextvars for the block's duration."""
    with structlog.contextvars.bound_contextvars(correlation_id=correlation_id.short_id):
        yield correlation_id


def trace_stage(func: Callable) -> Callable:
    """A decorator to add structured enter/exit tracing to an async operation."""
    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        stage_name = f"{args[0].__class__.__name__}.{func.__name__}"
        logger.info("Entering processing stage.", stage=stage_name)
        result = await func(*args, **kwargs)
        logger.info("Exiting processing stage.", stage=stage_name)
        return result
    return wrapper
