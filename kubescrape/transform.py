"""Transformations that spread mapping values into one attribute each."""

from __future__ import annotations

import string
from typing import Any, Callable, Mapping

from kubescrape.quantity import Quantity

_DIGITS = frozenset(string.digits)
_LOWER = frozenset(string.ascii_lowercase)
_UPPER = frozenset(string.ascii_uppercase)
_WORD = _DIGITS | _LOWER | _UPPER

_RESOURCE_UNITS = {
    "ephemeral-storage": "Bytes",
    "memory": "Bytes",
    "cpu": "Cores",
    "storage": "Bytes",
}


def camelcase(text: str) -> str:
    """Join the ASCII words of ``text`` in lower camel case, e.g. ``"foo-bar"`` -> ``"fooBar"``."""
    out: list[str] = []
    i, n = 0, len(text)
    while i < n:
        while i < n and text[i] not in _WORD:
            i += 1
        if i >= n:
            break

        c = text[i]
        if c in _DIGITS:
            while i < n and text[i] in _DIGITS:
                out.append(text[i])
                i += 1
            continue

        if c in _UPPER:
            out.append(c)
            i += 1
            while i < n and text[i] in _UPPER:
                out.append(text[i].lower())
                i += 1
        else:
            out.append(c.upper())
            i += 1

        while i < n and text[i] in _LOWER:
            out.append(text[i])
            i += 1

    result = "".join(out)
    return result[:1].lower() + result[1:]


def _title(text: str) -> str:
    out = []
    after_separator = True
    for ch in text:
        out.append(ch.upper() if after_separator and ch.isalpha() else ch)
        after_separator = not (ch.isalnum() or ch == "_") and (ch.isascii() or ch.isspace())
    return "".join(out)


def prefix_from_map_int(prefix: str) -> Callable[[Any], dict[str, int]]:
    """Build a transform that prefixes every key of a mapping of integers."""

    def transform(value: Any) -> dict[str, int]:
        if not isinstance(value, Mapping) or not all(isinstance(v, int) for v in value.values()):
            raise TypeError("cannot make prefixes: value is not a mapping of integers")
        return {f"{prefix}{key}": v for key, v in value.items()}

    return transform


def one_metric_per_label(raw_labels: Any) -> dict[str, str]:
    """Turn a label mapping into one ``label.<name>`` metric per label."""
    if not isinstance(raw_labels, Mapping) or not all(isinstance(v, str) for v in raw_labels.values()):
        raise TypeError("error on creating kubelet label metrics")
    return {f"label.{key}": value for key, value in raw_labels.items()}


def _one_attribute_per_resource(raw_resources: Any, resource_type: str) -> dict[str, float | int]:
    if not isinstance(raw_resources, Mapping) or not all(
        isinstance(q, Quantity) for q in raw_resources.values()
    ):
        raise TypeError(f"creating resource {resource_type} attributes")

    attributes: dict[str, float | int] = {}
    for name, quantity in raw_resources.items():
        key = camelcase(resource_type + _title(name + _RESOURCE_UNITS.get(name, "")))
        # CPU is reported in cores, so it must not be rounded to a whole number.
        attributes[key] = quantity.as_approximate_float() if name == "cpu" else quantity.value()
    return attributes


def one_attribute_per_allocatable(raw_resources: Any) -> dict[str, float | int]:
    """One ``allocatable<Resource>`` attribute per resource quantity."""
    return _one_attribute_per_resource(raw_resources, "allocatable")


def one_attribute_per_capacity(raw_resources: Any) -> dict[str, float | int]:
    """One ``capacity<Resource>`` attribute per resource quantity."""
    return _one_attribute_per_resource(raw_resources, "capacity")