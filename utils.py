"""
Helpers for building and running declarative lazy pipelines.

A pipeline is described by a ``models.PipelineRequest``: a source, a list of
operations and a terminal. These helpers turn it into a ``LazyIterator``,
run it while measuring time and memory, and keep a running performance
ledger.
"""

import gc
import logging
import os
import time
import tracemalloc
from typing import Any, Dict, List, Optional, Tuple, Union

import psutil

from lazy_iterator import LazyIterator
from models import (
    Operation,
    OperationType,
    PerformanceMetrics,
    PipelineRequest,
    PipelineResult,
    SourceType,
    TerminalType,
)

logger = logging.getLogger(__name__)


class PipelineConfigurationError(ValueError):
    """Raised when a pipeline names an operation or terminal with no handler."""
    pass


# Global performance tracking
_performance_metrics = {
    "operations": [],
    "total_time_ms": 0.0,
    "total_memory_mb": 0.0,
    "operation_count": 0
}


def _rss_mb() -> float:
    return psutil.Process(os.getpid()).memory_info().rss / 1024 / 1024


def _record(performance_info: Dict[str, Any]) -> None:
    _performance_metrics["operations"].append(performance_info)
    _performance_metrics["total_time_ms"] += performance_info["execution_time_ms"]
    _performance_metrics["total_memory_mb"] += performance_info["memory_usage_mb"]
    _performance_metrics["operation_count"] += 1


def _measure(operation_name: str, func, *args, **kwargs) -> Tuple[Any, Dict[str, Any], Optional[Exception]]:
    """
    Run ``func`` with timing and memory tracking and record it in the ledger.

    Returns ``(result, performance_info, error)``; the ledger entry never
    holds the result itself. Tracing already started by an outer
    measurement is left running, and only the growth above its current
    usage is reported.
    """
    started_tracing = not tracemalloc.is_tracing()
    if started_tracing:
        tracemalloc.start()
    gc.collect()
    baseline = tracemalloc.get_traced_memory()[0]
    start_time = time.perf_counter()

    result = None
    error = None
    try:
        result = func(*args, **kwargs)
    except Exception as e:
        error = e
    finally:
        execution_time_ms = (time.perf_counter() - start_time) * 1000
        current, peak = tracemalloc.get_traced_memory()
        if started_tracing:
            tracemalloc.stop()

    performance_info = {
        "operation": operation_name,
        "execution_time_ms": execution_time_ms,
        "memory_usage_mb": max(peak - baseline, 0) / 1024 / 1024,
        "rss_mb": _rss_mb(),
        "success": error is None,
        "timestamp": time.time()
    }
    if error is None:
        performance_info["result_size"] = len(result) if isinstance(result, (list, set)) else None
    else:
        performance_info["error"] = str(error)
        logger.error(f"{operation_name} failed after {execution_time_ms:.2f}ms: {error}")

    _record(performance_info)
    return result, performance_info, error


def measure_performance(operation_name: str, func, *args, **kwargs) -> Dict[str, Any]:
    """Measure performance of a function call with memory tracking"""
    _, performance_info, error = _measure(operation_name, func, *args, **kwargs)
    if error is not None:
        raise error
    return performance_info


def get_performance_summary() -> Dict[str, Any]:
    """Get summary of all performance metrics"""
    if _performance_metrics["operation_count"] == 0:
        return {
            "total_operations": 0,
            "total_time_ms": 0.0,
            "total_memory_mb": 0.0,
            "avg_time_ms": 0.0,
            "avg_memory_mb": 0.0
        }

    return {
        "total_operations": _performance_metrics["operation_count"],
        "total_time_ms": _performance_metrics["total_time_ms"],
        "total_memory_mb": _performance_metrics["total_memory_mb"],
        "avg_time_ms": _performance_metrics["total_time_ms"] / _performance_metrics["operation_count"],
        "avg_memory_mb": _performance_metrics["total_memory_mb"] / _performance_metrics["operation_count"]
    }


def clear_performance_metrics():
    """Clear all performance metrics"""
    global _performance_metrics
    _performance_metrics = {
        "operations": [],
        "total_time_ms": 0.0,
        "total_memory_mb": 0.0,
        "operation_count": 0
    }


def create_source(source_type: SourceType, data) -> LazyIterator:
    """Pick the source adapter for ``source_type``"""
    if source_type == SourceType.KEYS:
        return LazyIterator.from_keys(data)
    if source_type == SourceType.VALUES:
        return LazyIterator.from_values(data)
    if source_type == SourceType.SET:
        return LazyIterator.from_set(data)
    return LazyIterator.from_sequence(data)


def apply_operation(iterator: LazyIterator, operation: Operation) -> LazyIterator:
    """Apply one declarative operation to ``iterator``"""
    op_type = operation.type

    if op_type == OperationType.MAP:
        return iterator.map(operation.function)
    elif op_type == OperationType.FILTER:
        return iterator.filter(operation.function)
    elif op_type == OperationType.TAKE:
        return iterator.take(operation.count)
    elif op_type == OperationType.SKIP:
        return iterator.skip(operation.count)
    elif op_type == OperationType.APPEND:
        return iterator.append(*operation.values)
    elif op_type == OperationType.PREPEND:
        return iterator.prepend(*operation.values)
    elif op_type == OperationType.SORT:
        return iterator.sort(reverse=operation.reverse)

    raise PipelineConfigurationError(f"Unknown operation: {op_type}")


def consume(iterator: LazyIterator, request: PipelineRequest) -> Any:
    """Run the request's terminal on ``iterator``"""
    terminal = request.terminal

    if terminal == TerminalType.COLLECT:
        return iterator.collect()
    elif terminal == TerminalType.COLLECT_INTO_SET:
        return iterator.collect_into_set()
    elif terminal == TerminalType.FIRST:
        return iterator.first()
    elif terminal == TerminalType.LAST:
        return iterator.last()
    elif terminal == TerminalType.SIZE:
        return iterator.size()
    elif terminal == TerminalType.JOIN:
        return iterator.join(request.separator)
    elif terminal == TerminalType.REDUCE:
        return iterator.reduce(request.reducer)
    elif terminal == TerminalType.FOLD:
        return iterator.fold(request.reducer, request.initial)

    raise PipelineConfigurationError(f"Unknown terminal: {terminal}")


def build_pipeline(request: Union[PipelineRequest, Dict[str, Any]]) -> Tuple[LazyIterator, List[str]]:
    """Build the (still unprocessed) iterator described by ``request``"""
    if isinstance(request, dict):
        request = PipelineRequest(**request)

    iterator = create_source(request.source_type, request.data)
    operations_applied = []

    for operation in request.operations:
        iterator = apply_operation(iterator, operation)
        operations_applied.append(operation.type.value)

    logger.debug(f"Built {request.source_type.value} pipeline: {operations_applied}")
    return iterator, operations_applied


def run_pipeline(request: Union[PipelineRequest, Dict[str, Any]]) -> PipelineResult:
    """
    Build and consume a pipeline, reporting timing and memory.

    Every run is recorded in the performance ledger. Errors raised while
    running (including those from user callables) are logged and reported
    in the result instead of propagating. An invalid request dict still
    raises ``pydantic.ValidationError``.
    """
    if isinstance(request, dict):
        request = PipelineRequest(**request)

    operations_applied = [operation.type.value for operation in request.operations]

    def execute():
        iterator, _ = build_pipeline(request)
        return consume(iterator, request)

    result, performance_info, error = _measure(
        f"pipeline_{request.source_type.value}_{request.terminal.value}", execute
    )

    if error is not None:
        return PipelineResult(
            error=str(error),
            operations_applied=operations_applied,
            performance=PerformanceMetrics(
                processing_time_ms=performance_info["execution_time_ms"],
                error=True
            )
        )

    logger.info(
        f"Pipeline {operations_applied} -> {request.terminal.value} "
        f"in {performance_info['execution_time_ms']:.2f}ms"
    )

    return PipelineResult(
        result=result,
        operations_applied=operations_applied,
        performance=PerformanceMetrics(
            processing_time_ms=performance_info["execution_time_ms"],
            memory_usage_mb=performance_info["memory_usage_mb"],
            rss_mb=performance_info["rss_mb"],
            output_size=performance_info["result_size"]
        )
    )
