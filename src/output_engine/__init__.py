"""Output Engine package root.

Validate LLM output against a declared Schema and drive a bounded
generate / validate / repair loop, singly or as a concurrent batch.
Applications should import from this package rather than from submodules.
"""

__version__ = "0.1.0"

from output_engine.exceptions import (  # noqa: F401
    BackendConfigError,
    BackendError,
    ConfigurationError,
    ManifestLoadError,
    OutputEngineError,
    SchemaDefinitionError,
)
from output_engine.runtime import (  # noqa: F401
    AnthropicBackend,
    Backend,
    CancellationToken,
    MetricsCollector,
    MockBackend,
    OpenAIBackend,
    generate,
    generate_batch,
    iter_batch,
)
from output_engine.schema_loader import load_schema, schema_from_dict  # noqa: F401
from output_engine.schemas import *  # noqa: F401,F403
from output_engine.schemas import __all__ as SCHEMA_EXPORTS
from output_engine.spec import FieldSpec, FieldType, Schema, Spec, StringFormat  # noqa: F401
from output_engine.telemetry import TelemetryBus  # noqa: F401

__all__ = [
    "__version__",
    "AnthropicBackend",
    "Backend",
    "BackendConfigError",
    "BackendError",
    "CancellationToken",
    "ConfigurationError",
    "FieldSpec",
    "FieldType",
    "ManifestLoadError",
    "MetricsCollector",
    "MockBackend",
    "OpenAIBackend",
    "OutputEngineError",
    "Schema",
    "SchemaDefinitionError",
    "Spec",
    "StringFormat",
    "TelemetryBus",
    "generate",
    "generate_batch",
    "iter_batch",
    "load_schema",
    "schema_from_dict",
] + SCHEMA_EXPORTS
