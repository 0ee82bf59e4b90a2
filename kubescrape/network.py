"""Network metric lookups with a fallback to the default interface."""

from __future__ import annotations

from typing import Any, Callable, Mapping

RawGroups = Mapping[str, Mapping[str, Mapping[str, Any]]]
FetchFunc = Callable[[str, str, RawGroups], Any]


def _default_interface(groups: RawGroups) -> str:
    if "network" not in groups:
        raise LookupError("network group not found")
    network = groups["network"]
    if "interfaces" not in network:
        raise LookupError("network interfaces attribute not found")
    interfaces = network["interfaces"]
    if "default" not in interfaces:
        raise LookupError("default interface not found")
    default = interfaces["default"]
    if not isinstance(default, str):
        raise TypeError("default interface is not a valid interface name")
    if not default:
        raise LookupError("default interface not set")
    return default


def _metric_from_default_interface(default: str, metric_key: str, metrics: Mapping[str, Any]) -> Any:
    if "interfaces" not in metrics:
        raise LookupError("interfaces metrics not found")
    interfaces = metrics["interfaces"]
    if not isinstance(interfaces, Mapping):
        raise TypeError("wrong format for interfaces metrics")
    if default not in interfaces:
        raise LookupError("default interface metrics not found")
    interface = interfaces[default]
    if metric_key not in interface:
        raise LookupError("metric not found for default interface")
    return interface[metric_key]


def from_raw_with_fallback_to_default_interface(metric_key: str) -> FetchFunc:
    """Build a fetcher for ``metric_key`` that falls back to the default interface's value."""

    def fetch(group_label: str, entity_id: str, groups: RawGroups) -> Any:
        if group_label not in groups:
            raise LookupError("group not found")
        group = groups[group_label]
        if entity_id not in group:
            raise LookupError("entity not found")
        entity = group[entity_id]
        if metric_key in entity:
            return entity[metric_key]

        try:
            default = _default_interface(groups)
            return _metric_from_default_interface(default, metric_key, entity)
        except (LookupError, TypeError) as err:
            raise LookupError(
                f"metric not found and default interface fallback failed: {err}"
            ) from err

    return fetch