import logging
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

# Span currently open in this context (thread or task)
trace_context: ContextVar[Optional['TraceSpan']] = ContextVar(
    'trace_context', default=None
)

logger = logging.getLogger(__name__)


@dataclass
class TraceSpan:
    '''A timed unit of engine work with key/value metadata.'''

    name: str
    start_time: float = field(default_factory=time.perf_counter)
    end_time: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    parent: Optional['TraceSpan'] = None
    children: list['TraceSpan'] = field(default_factory=list)

    @property
    def duration_ms(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time) * 1000

    @property
    def depth(self) -> int:
        depth = 0
        node = self.parent
        while node is not None:
            depth += 1
            node = node.parent
        return depth

    def finish(self) -> None:
        self.end_time = time.perf_counter()
        metadata_str = ', '.join(f'{k}={v}' for k, v in self.metadata.items())
        parent_str = f' (parent: {self.parent.name})' if self.parent else ''
        logger.debug(
            f'{"  " * self.depth}{self.name}: '
            f'{self.duration_ms:.2f}ms{parent_str} [{metadata_str}]'
        )


@contextmanager
def trace_span(
    name: str, metadata: Optional[Dict[str, Any]] = None
) -> Iterator[TraceSpan]:
    '''Open a span nested under the current one and time it until exit.

    Example:
        with trace_span('achievements.evaluate', {'achievement_id': 7}) as span:
            result = evaluate_rule(...)
            span.metadata['passed'] = result.passed
    '''
    parent = trace_context.get()
    span = TraceSpan(name=name, metadata=dict(metadata or {}), parent=parent)
    if parent:
        parent.children.append(span)

    token = trace_context.set(span)
    try:
        yield span
    finally:
        span.finish()
        trace_context.reset(token)


def get_current_span() -> Optional[TraceSpan]:
    return trace_context.get()


def add_span_metadata(key: str, value: Any) -> None:
    '''Attach metadata to the innermost open span, if any.'''
    current = get_current_span()
    if current:
        current.metadata[key] = value
