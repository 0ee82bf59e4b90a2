"""Grouping of everything the kubelet reports into raw metric groups."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping

from kubescrape.cadvisor import ErrorGroup
from kubescrape.quantity import Quantity, parse_quantity
from kubescrape.stats import get_metrics_data, group_stats_summary

RawMetrics = dict[str, Any]
RawGroups = dict[str, dict[str, RawMetrics]]
FetchFunc = Callable[[], RawGroups]
NodeGetter = Callable[[str], Mapping[str, Any]]

_CONDITION_VALUES = {"True": 1, "False": 0, "Unknown": -1}


def fill_groups_and_merge_non_existent(destination: RawGroups, source: Mapping[str, Any]) -> None:
    """Merge ``source`` into ``destination`` without overwriting anything.

    Groups missing from ``destination`` are taken whole. For groups present in
    both, only the entities already in ``destination`` receive the metrics they
    do not have yet.
    """
    for label, group in source.items():
        if label not in destination:
            destination[label] = group
            continue

        for entity_id, entity in destination[label].items():
            if entity_id not in group:
                continue
            for key, value in group[entity_id].items():
                entity.setdefault(key, value)


def _resource_list(raw: Mapping[str, Any] | None) -> dict[str, Quantity]:
    return {
        name: value if isinstance(value, Quantity) else parse_quantity(str(value))
        for name, value in (raw or {}).items()
    }


def _node_conditions(conditions: Iterable[Mapping[str, Any]]) -> dict[str, int]:
    result: dict[str, int] = {}
    for condition in conditions:
        value = _CONDITION_VALUES.get(condition.get("status"))
        if value is None:
            # Any other status is not allowed by the API; skip it.
            continue
        condition_type = str(condition.get("type", ""))
        # Duplicate conditions that disagree are reported as unknown.
        if condition_type in result and result[condition_type] != value:
            value = -1
        result[condition_type] = value
    return result


class KubeletGrouper:
    """Gathers pods, containers, node and volume data from the kubelet and the API server."""

    def __init__(
        self,
        client,
        node_getter: NodeGetter | None,
        fetchers: Iterable[FetchFunc] = (),
        default_network_interface: str = "",
        logger: logging.Logger | None = None,
    ) -> None:
        if node_getter is None:
            raise ValueError("NodeGetter must be set")
        self._client = client
        self._node_getter = node_getter
        self._fetchers = list(fetchers)
        self._default_network_interface = default_network_interface
        self._logger = logger or logging.getLogger(__name__)

    def group(self, spec_groups: Any = None) -> RawGroups:
        """Fetch and merge all kubelet data.

        Raises :class:`ErrorGroup` when the data cannot be gathered.
        """
        raw_groups: RawGroups = {
            "network": {"interfaces": {"default": self._default_network_interface}},
        }

        for fetch in self._fetchers:
            try:
                fetched = fetch()
            except ErrorGroup as err:
                self._logger.debug("Recoverable errors fetching kubelet data: %s", err)
                fetched = err.groups
            except Exception as err:
                raise ErrorGroup([RuntimeError(f"error querying Kubelet. {err}")]) from err
            fill_groups_and_merge_non_existent(raw_groups, fetched)

        try:
            summary = get_metrics_data(self._client)
        except Exception as err:
            raise ErrorGroup([RuntimeError(f"error querying Kubelet. {err}")]) from err

        resources, errors = group_stats_summary(summary)
        if errors:
            raise ErrorGroup(errors, recoverable=True)

        fill_groups_and_merge_non_existent(raw_groups, resources)

        node_name = (summary.get("node") or {}).get("nodeName", "")
        try:
            node = self._node_getter(node_name)
        except Exception as err:
            raise ErrorGroup([RuntimeError(f"error querying ApiServer: {err}")]) from err

        requested_cpu_millis = 0
        requested_memory_bytes = 0
        for container in raw_groups.get("container", {}).values():
            requested_memory_bytes += container.get("memoryRequestedBytes", 0)
            requested_cpu_millis += container.get("cpuRequestedCores", 0)

        metadata = node.get("metadata") or {}
        spec = node.get("spec") or {}
        status = node.get("status") or {}

        node_group: RawGroups = {
            "node": {
                node_name: {
                    "labels": dict(metadata.get("labels") or {}),
                    "allocatable": _resource_list(status.get("allocatable")),
                    "capacity": _resource_list(status.get("capacity")),
                    "memoryRequestedBytes": requested_memory_bytes,
                    "cpuRequestedCores": requested_cpu_millis,
                    "conditions": _node_conditions(status.get("conditions") or ()),
                    "unschedulable": bool(spec.get("unschedulable", False)),
                    "kubeletVersion": (status.get("nodeInfo") or {}).get("kubeletVersion", ""),
                },
            },
        }
        fill_groups_and_merge_non_existent(raw_groups, node_group)

        return raw_groups