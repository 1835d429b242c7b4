"""Models describing a declarative lazy pipeline and its result."""

from typing import Any, Callable, List, Optional
from pydantic import BaseModel, Field, model_validator, ConfigDict
from enum import Enum


class SourceType(str, Enum):
    """Which source adapter reads the input data"""
    SEQUENCE = "sequence"
    KEYS = "keys"
    VALUES = "values"
    SET = "set"


class OperationType(str, Enum):
    """Composition operation enumeration"""
    MAP = "map"
    FILTER = "filter"
    TAKE = "take"
    SKIP = "skip"
    APPEND = "append"
    PREPEND = "prepend"
    SORT = "sort"


class TerminalType(str, Enum):
    """Terminal operation enumeration"""
    COLLECT = "collect"
    COLLECT_INTO_SET = "collect_into_set"
    FIRST = "first"
    LAST = "last"
    SIZE = "size"
    JOIN = "join"
    REDUCE = "reduce"
    FOLD = "fold"


class Operation(BaseModel):
    """One step of a pipeline."""
    type: OperationType = Field(..., description="Operation to apply")
    function: Optional[Callable[..., Any]] = Field(
        None,
        description="Transform for map, predicate for filter"
    )
    count: Optional[int] = Field(
        None,
        description="Element count for take/skip; zero or negative is allowed"
    )
    values: List[Any] = Field(
        default_factory=list,
        description="Literal values for append/prepend"
    )
    reverse: bool = Field(False, description="Sort in descending order")

    @model_validator(mode='after')
    def validate_arguments(self):
        """Each operation carries the argument it needs."""
        if self.type in (OperationType.MAP, OperationType.FILTER) and self.function is None:
            raise ValueError(f"{self.type.value} requires a function")

        if self.type in (OperationType.TAKE, OperationType.SKIP) and self.count is None:
            raise ValueError(f"{self.type.value} requires a count")

        return self


class PipelineRequest(BaseModel):
    """A source, a chain of operations and a terminal."""
    source_type: SourceType = Field(SourceType.SEQUENCE, description="Source adapter")
    data: Any = Field(..., description="Sequence, mapping or set to read from")
    operations: List[Operation] = Field(
        default_factory=list,
        description="Operations applied in order"
    )
    terminal: TerminalType = Field(TerminalType.COLLECT, description="How to consume the pipeline")
    separator: str = Field(", ", description="Separator for join")
    reducer: Optional[Callable[[Any, Any], Any]] = Field(
        None,
        description="Reducer for reduce/fold"
    )
    initial: Any = Field(None, description="Seed for fold")

    @model_validator(mode='after')
    def validate_terminal(self):
        """reduce and fold need a reducer."""
        if self.terminal in (TerminalType.REDUCE, TerminalType.FOLD) and self.reducer is None:
            raise ValueError(f"{self.terminal.value} requires a reducer")

        if self.source_type in (SourceType.KEYS, SourceType.VALUES) and not hasattr(self.data, "keys"):
            raise ValueError(f"{self.source_type.value} source requires a mapping")

        return self


class PerformanceMetrics(BaseModel):
    """Timing and memory of one pipeline run"""
    processing_time_ms: float = Field(..., description="Wall time in milliseconds", ge=0)
    memory_usage_mb: Optional[float] = Field(None, description="Peak traced memory in MB", ge=0)
    rss_mb: Optional[float] = Field(None, description="Process resident memory in MB", ge=0)
    output_size: Optional[int] = Field(None, description="Number of elements produced", ge=0)
    error: bool = Field(False, description="Whether the run failed")


class PipelineResult(BaseModel):
    """Outcome of running a pipeline."""
    result: Any = Field(None, description="Value returned by the terminal")
    operations_applied: List[str] = Field(
        default_factory=list,
        description="Names of the operations in the chain"
    )
    error: Optional[str] = Field(None, description="Error message if the run failed")
    performance: PerformanceMetrics

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "result": [4, 5],
                "operations_applied": ["skip", "take"],
                "performance": {
                    "processing_time_ms": 0.12,
                    "memory_usage_mb": 0.01,
                    "rss_mb": 42.5,
                    "output_size": 2,
                    "error": False
                }
            }
        }
    )
