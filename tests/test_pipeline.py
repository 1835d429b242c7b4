import operator
import tracemalloc

import pytest
from pydantic import ValidationError

import utils
from lazy_iterator import LazyIterator
from models import Operation, OperationType, PipelineRequest, SourceType, TerminalType
from utils import (
    PipelineConfigurationError,
    apply_operation,
    build_pipeline,
    get_performance_summary,
    measure_performance,
    run_pipeline,
)


class TestPipelineModels:
    """Test validation of declarative pipelines"""

    def test_map_requires_function(self):
        with pytest.raises(ValidationError, match="map requires a function"):
            Operation(type="map")

    def test_take_requires_count(self):
        with pytest.raises(ValidationError, match="take requires a count"):
            Operation(type=OperationType.TAKE)

    def test_negative_count_is_allowed(self):
        """Counts degrade at run time instead of being rejected"""
        assert Operation(type="skip", count=-3).count == -3

    def test_reduce_requires_reducer(self):
        with pytest.raises(ValidationError, match="reduce requires a reducer"):
            PipelineRequest(data=[1, 2], terminal="reduce")

    def test_keys_source_requires_mapping(self):
        with pytest.raises(ValidationError, match="keys source requires a mapping"):
            PipelineRequest(source_type="keys", data=[1, 2])

    def test_unknown_operation_name(self):
        with pytest.raises(ValidationError):
            Operation(type="batch", count=2)


class TestBuildPipeline:
    """Test turning requests into iterators"""

    def test_build_is_lazy(self):
        """Building reads nothing"""
        seen = []
        iterator, applied = build_pipeline({
            "data": [1, 2, 3],
            "operations": [{"type": "map", "function": seen.append}],
        })
        assert isinstance(iterator, LazyIterator)
        assert applied == ["map"]
        assert seen == []
        assert not iterator.is_processed()

    def test_unhandled_operation(self):
        """An operation without a handler is a configuration error"""
        operation = Operation.model_construct(type="batch")
        with pytest.raises(PipelineConfigurationError, match="Unknown operation"):
            apply_operation(LazyIterator.from_tuple(1), operation)


class TestRunPipeline:
    """Test running declarative pipelines"""

    def test_skip_take_window(self):
        result = run_pipeline(PipelineRequest(
            data=[1, 2, 3, 4, 5, 6],
            operations=[
                Operation(type="skip", count=3),
                Operation(type="take", count=2),
            ],
        ))
        assert result.error is None
        assert result.result == [4, 5]
        assert result.operations_applied == ["skip", "take"]
        assert result.performance.output_size == 2
        assert result.performance.processing_time_ms >= 0
        assert result.performance.rss_mb > 0

    def test_sorted_keys(self):
        result = run_pipeline({
            "source_type": SourceType.KEYS,
            "data": {"b": 2, "a": 1},
            "operations": [{"type": "sort"}],
        })
        assert result.result == ["a", "b"]

    def test_values_fold(self):
        result = run_pipeline(PipelineRequest(
            source_type="values",
            data={"a": 1, "b": 2, "c": 3},
            terminal=TerminalType.FOLD,
            reducer=operator.add,
            initial=10,
        ))
        assert result.result == 16

    def test_set_with_append_and_join(self):
        result = run_pipeline(PipelineRequest(
            source_type="set",
            data={3, 1, 2},
            operations=[
                Operation(type="append", values=[0]),
                Operation(type="sort", reverse=True),
                Operation(type="prepend", values=["x"]),
            ],
            terminal="join",
            separator="",
        ))
        assert result.result == "x3210"
        assert result.performance.output_size is None

    def test_reduce_empty(self):
        result = run_pipeline(PipelineRequest(data=[], terminal="reduce", reducer=operator.add))
        assert result.error is None
        assert result.result is None

    def test_errors_are_reported(self):
        """Exceptions from user callables end up in the result"""
        result = run_pipeline(PipelineRequest(
            data=[1, 0],
            operations=[Operation(type="map", function=lambda n: 1 / n)],
        ))
        assert result.result is None
        assert "division by zero" in result.error
        assert result.performance.error is True
        assert result.operations_applied == ["map"]


class TestPerformanceTracking:
    """Test the performance ledger"""

    def test_measure_performance(self):
        info = measure_performance("collect", LazyIterator.from_sequence(range(100)).collect)
        assert info["success"] is True
        assert info["result_size"] == 100
        assert info["execution_time_ms"] >= 0

        summary = get_performance_summary()
        assert summary["total_operations"] == 1

    def test_measure_performance_reraises(self):
        def fail():
            raise ValueError("Test exception")

        with pytest.raises(ValueError, match="Test exception"):
            measure_performance("fail", fail)

        assert get_performance_summary()["total_operations"] == 1

    def test_pipeline_runs_are_recorded(self):
        """Every run, failed or not, lands in the ledger"""
        run_pipeline(PipelineRequest(data=[1, 2, 3]))
        run_pipeline(PipelineRequest(data=[0], operations=[Operation(type="map", function=lambda n: 1 / n)]))

        summary = get_performance_summary()
        assert summary["total_operations"] == 2, f"Expected 2 recorded runs, got {summary}"

        entries = utils._performance_metrics["operations"]
        assert entries[0]["success"] is True
        assert entries[0]["result_size"] == 3
        assert entries[1]["success"] is False
        assert "division by zero" in entries[1]["error"]

    def test_ledger_does_not_keep_results(self):
        """Only the size of a result is stored"""
        measure_performance("collect", LazyIterator.from_sequence(list(range(1000))).collect)

        entry = utils._performance_metrics["operations"][0]
        assert "result" not in entry, "ledger should not hold on to results"
        assert entry["result_size"] == 1000

    def test_nested_measurement_keeps_outer_trace(self):
        """A pipeline run inside a measurement doesn't stop the outer trace"""
        def run_and_allocate():
            run_pipeline(PipelineRequest(data=[1, 2, 3]))
            assert tracemalloc.is_tracing(), "inner run stopped the outer trace"
            return [bytearray(100_000) for _ in range(5)]

        info = measure_performance("outer", run_and_allocate)
        assert not tracemalloc.is_tracing()
        assert info["memory_usage_mb"] > 0.4, f"Outer peak lost: {info['memory_usage_mb']}"
        assert get_performance_summary()["total_operations"] == 2

    def test_empty_summary(self):
        assert get_performance_summary() == {
            "total_operations": 0,
            "total_time_ms": 0.0,
            "total_memory_mb": 0.0,
            "avg_time_ms": 0.0,
            "avg_memory_mb": 0.0
        }
