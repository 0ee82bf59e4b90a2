"""Reading and grouping the kubelet's stats summary."""

from __future__ import annotations

import json
from contextlib import closing
from http import HTTPStatus
from typing import Any, Callable, Mapping

STATS_SUMMARY_PATH = "/stats/summary"

RawMetrics = dict[str, Any]
RawGroups = dict[str, dict[str, RawMetrics]]
EntityIDGenerator = Callable[[str, str, RawGroups], str]

_FS_FIELDS = (
    ("AvailableBytes", "availableBytes"),
    ("CapacityBytes", "capacityBytes"),
    ("UsedBytes", "usedBytes"),
    ("InodesFree", "inodesFree"),
    ("Inodes", "inodes"),
    ("InodesUsed", "inodesUsed"),
)

_MEMORY_FIELDS = (
    ("memoryUsageBytes", "usageBytes"),
    ("memoryAvailableBytes", "availableBytes"),
    ("memoryWorkingSetBytes", "workingSetBytes"),
    ("memoryRssBytes", "rssBytes"),
    ("memoryPageFaults", "pageFaults"),
    ("memoryMajorPageFaults", "majorPageFaults"),
)


def get_metrics_data(client) -> dict[str, Any]:
    """Fetch the kubelet stats summary through ``client.get`` and decode it."""
    try:
        response = client.get(STATS_SUMMARY_PATH)
    except OSError as err:
        raise ConnectionError(
            f'performing GET request to kubelet endpoint "{STATS_SUMMARY_PATH}": {err}'
        ) from err

    with closing(response):
        body = response.content
        if response.status_code != HTTPStatus.OK:
            text = body.decode("utf-8", errors="replace")
            raise RuntimeError(
                "received non-OK response code from kubelet: "
                f"{response.status_code}: response body: {text}"
            )
        try:
            summary = json.loads(body)
        except ValueError as err:
            raise ValueError(
                f"unmarshaling the response body into kubelet stats Summary: {err}"
            ) from err

    if not isinstance(summary, dict):
        raise ValueError(
            "unmarshaling the response body into kubelet stats Summary: "
            "expected a JSON object"
        )
    return summary


def add_uint64_raw_metric(raw: RawMetrics, name: str, value: int | None) -> None:
    """Store ``value`` under ``name`` when it is present."""
    if value is not None:
        raw[name] = value


def _add_fs(raw: RawMetrics, prefix: str, stats: Mapping[str, Any]) -> None:
    for suffix, field in _FS_FIELDS:
        add_uint64_raw_metric(raw, prefix + suffix, stats.get(field))


def _interface_metrics(stats: Mapping[str, Any]) -> RawMetrics:
    raw: RawMetrics = {}
    add_uint64_raw_metric(raw, "rxBytes", stats.get("rxBytes"))
    add_uint64_raw_metric(raw, "txBytes", stats.get("txBytes"))
    rx_errors, tx_errors = stats.get("rxErrors"), stats.get("txErrors")
    if rx_errors is not None and tx_errors is not None:
        raw["errors"] = rx_errors + tx_errors
    return raw


def _add_network(raw: RawMetrics, network: Mapping[str, Any]) -> None:
    raw.update(_interface_metrics(network))
    raw["interfaces"] = {
        interface.get("name", ""): _interface_metrics(interface)
        for interface in network.get("interfaces") or ()
    }


def _node_stats(node: Mapping[str, Any]) -> tuple[str, RawMetrics]:
    node_name = node.get("nodeName") or ""
    if not node_name:
        raise ValueError(
            f"empty node identifier, possible data error in {STATS_SUMMARY_PATH} response"
        )
    raw: RawMetrics = {"nodeName": node_name}

    cpu = node.get("cpu")
    if cpu is not None:
        add_uint64_raw_metric(raw, "usageNanoCores", cpu.get("usageNanoCores"))
        add_uint64_raw_metric(raw, "usageCoreNanoSeconds", cpu.get("usageCoreNanoSeconds"))

    memory = node.get("memory")
    if memory is not None:
        for name, field in _MEMORY_FIELDS:
            add_uint64_raw_metric(raw, name, memory.get(field))

    network = node.get("network")
    if network is not None:
        _add_network(raw, network)

    fs = node.get("fs")
    if fs is not None:
        _add_fs(raw, "fs", fs)

    runtime = node.get("runtime")
    image_fs = runtime.get("imageFs") if runtime is not None else None
    if image_fs is not None:
        _add_fs(raw, "runtime", image_fs)

    return node_name, raw


def _pod_stats(pod: Mapping[str, Any]) -> tuple[str, RawMetrics]:
    pod_ref = pod.get("podRef") or {}
    name, namespace = pod_ref.get("name") or "", pod_ref.get("namespace") or ""
    if not name or not namespace:
        raise ValueError(
            f"empty pod identifier, possible data error in {STATS_SUMMARY_PATH} response"
        )
    raw: RawMetrics = {"podName": name, "namespace": namespace}

    network = pod.get("network")
    if network is not None:
        _add_network(raw, network)

    return f"{namespace}_{name}", raw


def _container_stats(container: Mapping[str, Any]) -> RawMetrics:
    name = container.get("name") or ""
    if not name:
        raise ValueError(
            f"empty container identifier, possible data error in {STATS_SUMMARY_PATH} response"
        )
    raw: RawMetrics = {"containerName": name}

    cpu = container.get("cpu")
    if cpu is not None:
        add_uint64_raw_metric(raw, "usageNanoCores", cpu.get("usageNanoCores"))

    memory = container.get("memory")
    if memory is not None:
        add_uint64_raw_metric(raw, "usageBytes", memory.get("usageBytes"))
        add_uint64_raw_metric(raw, "workingSetBytes", memory.get("workingSetBytes"))

    rootfs = container.get("rootfs")
    if rootfs is not None:
        _add_fs(raw, "fs", rootfs)

    return raw


def _volume_stats(volume: Mapping[str, Any]) -> RawMetrics:
    name = volume.get("name") or ""
    if not name:
        raise ValueError(
            f"empty volume identifier, possible data error in {STATS_SUMMARY_PATH} response"
        )
    raw: RawMetrics = {"volumeName": name}

    pvc_ref = volume.get("pvcRef")
    if pvc_ref is not None:
        raw["pvcName"] = pvc_ref.get("name", "")
        raw["pvcNamespace"] = pvc_ref.get("namespace", "")

    _add_fs(raw, "fs", volume)
    return raw


def group_stats_summary(summary: Mapping[str, Any] | None) -> tuple[RawGroups, list[Exception]]:
    """Group a stats summary into pod, container, volume and node metrics.

    Returns the groups together with the problems met on the way; entities
    that could not be read are left out of the groups.
    """
    if summary is None:
        raise ValueError("got no stats summary")

    errors: list[Exception] = []
    groups: RawGroups = {"pod": {}, "container": {}, "volume": {}, "node": {}}

    try:
        node_name, node_metrics = _node_stats(summary.get("node") or {})
    except ValueError as err:
        errors.append(err)
    else:
        groups["node"][node_name] = node_metrics

    pods = summary.get("pods")
    if pods is None:
        errors.append(
            ValueError(f"pods data not found, possible data error in {STATS_SUMMARY_PATH} response")
        )
        return groups, errors

    for pod in pods:
        try:
            pod_id, pod_metrics = _pod_stats(pod)
        except ValueError as err:
            errors.append(err)
            continue
        groups["pod"][pod_id] = pod_metrics
        pod_name, namespace = pod_metrics["podName"], pod_metrics["namespace"]

        for volume in pod.get("volume") or ():
            try:
                volume_metrics = _volume_stats(volume)
            except ValueError as err:
                errors.append(err)
                continue
            volume_metrics["podName"] = pod_name
            volume_metrics["namespace"] = namespace
            groups["volume"][f"{namespace}_{pod_name}_{volume_metrics['volumeName']}"] = volume_metrics

        for container in pod.get("containers") or ():
            try:
                container_metrics = _container_stats(container)
            except ValueError as err:
                errors.append(err)
                continue
            container_metrics["podName"] = pod_name
            container_metrics["namespace"] = namespace
            entity_id = f"{namespace}_{pod_name}_{container_metrics['containerName']}"
            groups["container"][entity_id] = container_metrics

    return groups, errors


def _entity(groups: RawGroups, group_label: str, raw_entity_id: str) -> RawMetrics:
    return groups.get(group_label, {}).get(raw_entity_id, {})


def from_raw_groups_entity_id_generator(key: str) -> EntityIDGenerator:
    """Build a generator that uses the string stored under ``key`` as entity ID."""

    def generate(group_label: str, raw_entity_id: str, groups: RawGroups) -> str:
        entity = _entity(groups, group_label, raw_entity_id)
        if key not in entity:
            raise LookupError(f'"{key}" not found for "{group_label}"')
        value = entity[key]
        if not isinstance(value, str):
            raise TypeError(f'incorrect type of "{key}" for "{group_label}"')
        return value

    return generate


def from_raw_entity_id_group_entity_id_generator(key: str) -> EntityIDGenerator:
    """Build a generator that strips the value under ``key`` and ``_`` from the raw entity ID."""

    def generate(group_label: str, raw_entity_id: str, groups: RawGroups) -> str:
        entity = _entity(groups, group_label, raw_entity_id)
        if key not in entity:
            raise LookupError(f'"{key}" not found for "{group_label}"')
        entity_id = raw_entity_id.removeprefix(f"{entity[key]}_")
        if not entity_id:
            raise ValueError("generated entity ID is empty")
        return entity_id

    return generate


def _string_values(group_label: str, raw_entity_id: str, groups: RawGroups, *keys: str) -> list[str]:
    if group_label not in groups:
        raise LookupError(f'"{group_label}" not found')
    group = groups[group_label]
    if raw_entity_id not in group:
        raise LookupError(f'entity data "{raw_entity_id}" not found for "{group_label}"')
    entity = group[raw_entity_id]

    values = []
    for key in keys:
        if key not in entity:
            raise LookupError(f'"{key}" not found for "{group_label}"')
        value = entity[key]
        if not isinstance(value, str):
            raise TypeError(f'incorrect type of "{key}" for "{group_label}"')
        values.append(value)
    return values


def from_raw_groups_entity_type_generator(
    group_label: str, raw_entity_id: str, groups: RawGroups, cluster_name: str
) -> str:
    """Compose the entity type from the cluster name, group label and, where needed, namespace and pod."""
    if group_label in ("namespace", "node"):
        return f"k8s:{cluster_name}:{group_label}"

    if group_label == "container":
        namespace, pod_name = _string_values(group_label, raw_entity_id, groups, "namespace", "podName")
        if not namespace or not pod_name:
            raise ValueError(f'empty values for generated entity type for "{group_label}"')
        return f"k8s:{cluster_name}:{namespace}:{pod_name}:{group_label}"

    (namespace,) = _string_values(group_label, raw_entity_id, groups, "namespace")
    if not namespace:
        raise ValueError(f'empty namespace for generated entity type for "{group_label}"')
    return f"k8s:{cluster_name}:{namespace}:{group_label}"


def from_label_get_namespace(metrics: Mapping[str, Any]) -> str:
    """Return the namespace stored in the metrics, or an empty string."""
    namespace = metrics.get("namespace")
    return namespace if isinstance(namespace, str) else ""