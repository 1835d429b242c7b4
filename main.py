import logging
from time import sleep, perf_counter

from lazy_iterator import LazyIterator
from models import PipelineRequest, Operation, OperationType, TerminalType
from utils import run_pipeline

logging.basicConfig(level=logging.INFO)


def expensive_transform(x):
    # Simulate a costly step so laziness is visible
    print(f"  computing f({x}) ...")
    sleep(0.2)
    return x * x


print("\n--- Demo: laziness (no work until processed) ---")
pipeline = (
    LazyIterator.from_sequence(range(1, 10_000))
    .map(expensive_transform)
    .filter(lambda v: v % 2 == 0)
    .skip(3)
    .take(5)
)

print("Constructed pipeline. No output yet (nothing computed).")
print("\nCollecting (should compute only what's needed for 5 items):")
t0 = perf_counter()
out = pipeline.collect()
t1 = perf_counter()
print(f"Result: {out}")
print(f"Time: {t1 - t0:.2f}s")
print(f"Processed: {pipeline.is_processed()}, collecting again: {pipeline.collect()}\n")

print("--- Demo: raw pull callable ---")
get_next = (
    LazyIterator.from_tuple(1, 2, 3, 4, 5, 6)
    .filter(lambda v: v % 2 == 0)
    .get_iterator()
)
pulled = []
while True:
    value = get_next()
    pulled.append(value)
    if value is LazyIterator.End:
        break
print(f"Pulled: {pulled}\n")

print("--- Demo: cloning ---")
source = LazyIterator.from_sequence([3, 1, 2])
copy = source.clone()
print(f"Clone size: {copy.size()}, original still unprocessed: {not source.is_processed()}")
print(f"Original sorted: {source.sort().collect()}")

budget = LazyIterator.from_sequence(range(10)).take(3)
twin = budget.clone()
print(f"Clones after take() share the budget: {budget.first()}, {twin.collect()}\n")

print("--- Demo: splicing ---")
print(LazyIterator.from_tuple(4, 5).prepend(LazyIterator.from_tuple(1, 2, 3)).append(6, 7).join(" -> "))

print("\n--- Demo: declarative pipeline ---")
report = run_pipeline(PipelineRequest(
    source_type="values",
    data={"a": 3, "b": 1, "c": 2},
    operations=[
        Operation(type=OperationType.MAP, function=lambda v: v * 10),
        Operation(type=OperationType.SORT),
    ],
    terminal=TerminalType.JOIN,
    separator=" < ",
))
print(f"Result: {report.result}")
print(f"Time: {report.performance.processing_time_ms:.2f}ms, peak memory: {report.performance.memory_usage_mb:.4f}MB")
