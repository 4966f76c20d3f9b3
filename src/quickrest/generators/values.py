"""Constrained random values and their canonical minimums.

All randomness flows through a RandomStream owned by one search worker, so
a run is reproducible from its seed and workers never share a generator.
"""

from __future__ import annotations

import math
import random
import string
from typing import Any

from faker import Faker

from quickrest.core.operation import Schema

DEFAULT_INT_RANGE = (-100, 1000)
DEFAULT_STRING_MAX = 12
MAX_ARRAY_ITEMS = 3
BOUNDARY_PROBABILITY = 0.1

_ALPHABET = string.ascii_letters + string.digits


class RandomStream:
    """Explicit per-worker source of randomness.

    Wraps a ``random.Random`` and a Faker instance seeded from it. Never use
    the module-level ``random`` functions or ``Faker.seed``; both are global.

    Example:
        stream = RandomStream(seed=42)
        synthesize(Schema(type="string", format="email"), stream)
    """

    def __init__(self, seed: int | None = None, locale: str = "en_US") -> None:
        self.seed = seed
        self.locale = locale
        self.random = random.Random(seed)
        self._faker: Faker | None = None

    @property
    def faker(self) -> Faker:
        if self._faker is None:
            self._faker = Faker(self.locale)
            self._faker.seed_instance(self.random.getrandbits(32))
        return self._faker

    def fork(self, index: int) -> RandomStream:
        """An independent stream for worker ``index``."""
        if self.seed is not None:
            return RandomStream(self.seed + index, self.locale)
        return RandomStream(self.random.getrandbits(64), self.locale)

    def chance(self, probability: float) -> bool:
        return self.random.random() < probability

    def choice(self, items: Any) -> Any:
        return self.random.choice(items)

    def weighted_choice(self, items: list[Any], weights: list[float]) -> Any:
        return self.random.choices(items, weights=weights, k=1)[0]

    def randint(self, low: int, high: int) -> int:
        return self.random.randint(low, high)

    def shuffled(self, items: list[Any]) -> list[Any]:
        copy = list(items)
        self.random.shuffle(copy)
        return copy


_FORMATS = {
    "email": lambda f: f.email(),
    "uuid": lambda f: f.uuid4(),
    "uri": lambda f: f.url(),
    "url": lambda f: f.url(),
    "hostname": lambda f: f.hostname(),
    "ipv4": lambda f: f.ipv4(),
    "ipv6": lambda f: f.ipv6(),
    "date": lambda f: f.date(),
    "date-time": lambda f: f.iso8601(),
    "password": lambda f: f.password(),
}


def _int_bounds(schema: Schema) -> tuple[int, int]:
    low = math.ceil(schema.minimum) if schema.minimum is not None else None
    high = math.floor(schema.maximum) if schema.maximum is not None else None
    span = DEFAULT_INT_RANGE[1] - DEFAULT_INT_RANGE[0]
    if low is None and high is None:
        return DEFAULT_INT_RANGE
    if low is None:
        return high - span, high
    if high is None:
        return low, low + span
    return low, high


def _length_bounds(schema: Schema) -> tuple[int, int]:
    low = schema.min_length or 0
    high = schema.max_length if schema.max_length is not None else max(low, DEFAULT_STRING_MAX)
    return low, high


def synthesize(schema: Schema, stream: RandomStream) -> Any:
    """A random value satisfying ``schema`` (type, enum, bounds, length, format)."""
    if schema.enum:
        return stream.choice(schema.enum)

    if schema.type == "boolean":
        return stream.chance(0.5)

    if schema.type == "integer":
        low, high = _int_bounds(schema)
        if stream.chance(BOUNDARY_PROBABILITY):
            return stream.choice([b for b in (low, high, 0) if low <= b <= high])
        return stream.randint(low, high)

    if schema.type == "number":
        low = schema.minimum if schema.minimum is not None else float(_int_bounds(schema)[0])
        high = schema.maximum if schema.maximum is not None else float(_int_bounds(schema)[1])
        return min(max(round(stream.random.uniform(low, high), 2), low), high)

    if schema.type == "string":
        low, high = _length_bounds(schema)
        make = _FORMATS.get(schema.format or "")
        if make is not None:
            value = make(stream.faker)
            if low <= len(value) and (schema.max_length is None or len(value) <= high):
                return value
        length = stream.randint(low, high)
        return "".join(stream.choice(_ALPHABET) for _ in range(length))

    if schema.type == "array":
        if schema.items is None:
            return []
        return [synthesize(schema.items, stream) for _ in range(stream.randint(0, MAX_ARRAY_ITEMS))]

    if schema.type == "object":
        value = {}
        for name, sub in schema.properties.items():
            if name in schema.required or stream.chance(0.5):
                value[name] = synthesize(sub, stream)
        return value

    return None


def value_size(value: Any) -> int | float:
    """Well-ordered size measure that shrinking strictly decreases."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return abs(value)
    if isinstance(value, str):
        return len(value)
    if isinstance(value, list):
        return len(value) + sum(value_size(v) for v in value)
    if isinstance(value, dict):
        return len(value) + sum(value_size(v) for v in value.values())
    return 0


def minimal_value(schema: Schema) -> Any:
    """Canonical minimum: zero, empty, false or the shortest enum member."""
    if schema.enum:
        return min(schema.enum, key=lambda v: (value_size(v), str(v)))
    if schema.type == "boolean":
        return False
    if schema.type in ("integer", "number"):
        zero = 0 if schema.type == "integer" else 0.0
        if schema.minimum is not None and schema.minimum > 0:
            return math.ceil(schema.minimum) if schema.type == "integer" else schema.minimum
        if schema.maximum is not None and schema.maximum < 0:
            return math.floor(schema.maximum) if schema.type == "integer" else schema.maximum
        return zero
    if schema.type == "string":
        return "a" * (schema.min_length or 0)
    if schema.type == "array":
        return []
    if schema.type == "object":
        return {
            name: minimal_value(schema.properties[name])
            for name in schema.required
            if name in schema.properties
        }
    return None


def conforms(value: Any, schema: Schema) -> bool:
    """Whether ``value`` satisfies the scalar constraints of ``schema``."""
    if schema.enum:
        return value in schema.enum
    if schema.type in ("integer", "number"):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if schema.minimum is not None and value < schema.minimum:
            return False
        if schema.maximum is not None and value > schema.maximum:
            return False
        return True
    if schema.type == "string":
        if not isinstance(value, str):
            return False
        low, high = _length_bounds(schema)
        return low <= len(value) and (schema.max_length is None or len(value) <= high)
    return True


def shrink_candidates(value: Any, schema: Schema) -> list[Any]:
    """Smaller valid values, most aggressive first.

    The first candidate is the canonical minimum; the rest narrow the
    distance to it by halves, so accepting the first candidate that
    preserves a verdict and repeating performs a binary search.
    """
    target = minimal_value(schema)
    size = value_size(value)
    found: list[Any] = []

    def offer(candidate: Any) -> None:
        if value_size(candidate) < size and conforms(candidate, schema) and candidate not in found:
            found.append(candidate)

    if schema.enum:
        for member in sorted(schema.enum, key=lambda v: (value_size(v), str(v))):
            offer(member)
        return found

    offer(target)
    if isinstance(value, bool):
        return found
    # A prefix of an email, uuid or date is no longer one
    if isinstance(value, str) and schema.format:
        return found

    if isinstance(value, float):
        truncated = float(math.trunc(value))
        offer(truncated)
        value = truncated if conforms(truncated, schema) else value

    if isinstance(value, (int, float)) and isinstance(target, (int, float)):
        distance = int(value - target)
        while abs(distance) > 1:
            distance = int(distance / 2)
            step = value - distance
            offer(float(step) if isinstance(value, float) else step)
        offer(value - (1 if value > target else -1) if value != target else value)
        return found

    if isinstance(value, (str, list)):
        floor = len(target) if isinstance(target, (str, list)) else 0
        length = len(value)
        while length - floor > 1:
            length = floor + (length - floor) // 2
            offer(value[:length])
        offer(value[:-1])
        return found

    if isinstance(value, dict) and schema.type == "object":
        for name in value:
            if name not in schema.required:
                offer({k: v for k, v in value.items() if k != name})
        return found

    return found
