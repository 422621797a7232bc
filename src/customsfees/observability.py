"""Evaluation-scoped log correlation for cart fee computations.

The service opens an evaluation scope per cart; every ``log_event`` emitted
inside it carries the evaluation id, the destination and the size of the
rule snapshot it was evaluated against.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterator, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationScope:
    evaluation_id: str
    destination: str = ""
    rule_count: int = 0


_scope_ctx: ContextVar[Optional[EvaluationScope]] = ContextVar("customs_fee_evaluation", default=None)


def new_evaluation_id() -> str:
    return str(uuid.uuid4())


@contextmanager
def evaluation_scope(
    evaluation_id: Optional[str] = None,
    *,
    destination: str = "",
    rule_count: int = 0,
) -> Iterator[EvaluationScope]:
    """Bind an evaluation scope for the duration of the block."""

    scope = EvaluationScope(evaluation_id or new_evaluation_id(), destination, rule_count)
    token = _scope_ctx.set(scope)
    try:
        yield scope
    finally:
        _scope_ctx.reset(token)


def current_scope() -> Optional[EvaluationScope]:
    return _scope_ctx.get()


def current_evaluation_id() -> Optional[str]:
    scope = _scope_ctx.get()
    return scope.evaluation_id if scope is not None else None


def log_event(message: str, **extra: Any) -> None:
    """Log *message* at INFO with the active scope merged into its payload."""

    scope = _scope_ctx.get()
    payload: Dict[str, Any] = asdict(scope) if scope is not None else {"evaluation_id": None}
    payload.update(extra)
    logger.info(message, extra={"payload": payload})
