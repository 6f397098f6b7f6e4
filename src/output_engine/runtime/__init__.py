"""Runtime exports: backends, generation loop and batch driver."""

from output_engine.runtime.backends import AnthropicBackend, Backend, MockBackend, OpenAIBackend
from output_engine.runtime.batch import generate_batch, iter_batch
from output_engine.runtime.concurrency import CancellationToken
from output_engine.runtime.generator import Attempt, GenerationState, generate
from output_engine.runtime.metrics_collector import MetricsCollector

__all__ = [
    "AnthropicBackend",
    "Attempt",
    "Backend",
    "CancellationToken",
    "GenerationState",
    "MetricsCollector",
    "MockBackend",
    "OpenAIBackend",
    "generate",
    "generate_batch",
    "iter_batch",
]
