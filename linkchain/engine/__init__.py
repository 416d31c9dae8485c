"""Resolution engine: state machine, timeout guard, result sink and dispatcher."""

from linkchain.engine.attempt import MAX_ATTEMPTS, LinkOutcome, TraceLog
from linkchain.engine.dispatcher import BatchDispatcher, BatchSummary, partition_links
from linkchain.engine.guard import resolve_with_retry, run_attempt
from linkchain.engine.machine import LinkStateMachine
from linkchain.engine.sink import ResultSink, merge_link_outcome
from linkchain.engine.stream import stream_batch

__all__ = [
    "MAX_ATTEMPTS",
    "LinkOutcome",
    "TraceLog",
    "LinkStateMachine",
    "run_attempt",
    "resolve_with_retry",
    "ResultSink",
    "merge_link_outcome",
    "BatchDispatcher",
    "BatchSummary",
    "partition_links",
    "stream_batch",
]
