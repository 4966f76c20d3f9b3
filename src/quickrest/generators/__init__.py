"""Value synthesis, sequence generation and OpenAPI loading."""

from quickrest.generators.openapi import load_openapi_spec, parse_operations
from quickrest.generators.sequence import Generator
from quickrest.generators.values import (
    RandomStream,
    minimal_value,
    shrink_candidates,
    synthesize,
    value_size,
)

__all__ = [
    "Generator",
    "RandomStream",
    "load_openapi_spec",
    "minimal_value",
    "parse_operations",
    "shrink_candidates",
    "synthesize",
    "value_size",
]
