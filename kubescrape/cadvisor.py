"""Container data read from the kubelet's cAdvisor metrics."""

from __future__ import annotations

import re
from typing import Any, Callable, Iterable, Mapping, Sequence

KUBELET_CADVISOR_METRICS_PATH = "/metrics/cadvisor"

RawMetrics = dict[str, Any]
RawGroups = dict[str, dict[str, RawMetrics]]

_DOCKER_NATIVE_WITHOUT_SYSTEMD = re.compile(r"^.*([0-9a-f]+)$")
_DOCKER_NATIVE_WITH_SYSTEMD = re.compile(r"^.*\w+-([0-9a-f]+)\.scope$")
_DOCKER_GENERIC = re.compile(r"^([0-9a-f]+)$")


class ErrorGroup(Exception):
    """Several errors met while gathering data, with the data gathered anyway."""

    def __init__(
        self,
        errors: Iterable[Exception],
        recoverable: bool = False,
        groups: RawGroups | None = None,
    ) -> None:
        self.errors = list(errors)
        self.recoverable = recoverable
        self.groups: RawGroups = groups if groups is not None else {}
        super().__init__("; ".join(str(err) for err in self.errors))


def _get_label(labels: Mapping[str, str], *names: str) -> str | None:
    for name in names:
        if name in labels:
            return labels[name]
    return None


def create_raw_entity_id(labels: Mapping[str, str]) -> str:
    """Build ``namespace_pod_container`` from cAdvisor labels.

    Returns an empty string for metrics that belong to no container.
    """
    container_name = _get_label(labels, "container_name", "container")
    if container_name is None:
        raise ValueError("container name not found in cAdvisor metrics")
    if not container_name:
        return ""

    namespace = labels.get("namespace", "")
    if not namespace:
        raise ValueError("namespace not found in cAdvisor metrics")

    pod_name = _get_label(labels, "pod_name", "pod") or ""
    if not pod_name:
        raise ValueError("pod name not found in cAdvisor metrics")

    return f"{namespace}_{pod_name}_{container_name}"


def extract_container_id(value: str) -> str:
    """Take the container ID out of a cgroup path such as ``/kubepods/.../<id>``."""
    container_id = value[value.rfind("/") + 1 :]
    match = _DOCKER_NATIVE_WITH_SYSTEMD.search(container_id)
    if match:
        return match.group(1)
    match = _DOCKER_NATIVE_WITHOUT_SYSTEMD.search(container_id) or _DOCKER_GENERIC.search(container_id)
    if match:
        return match.group(0)
    return container_id


def cadvisor_fetch_func(
    fetch_and_filter: Callable[[Sequence[Any]], Iterable[Any]], queries: Sequence[Any]
) -> Callable[[], RawGroups]:
    """Build a fetcher that groups cAdvisor metric families by container.

    ``fetch_and_filter`` is called with ``queries`` and returns metric families,
    each with a ``name`` and ``metrics`` holding ``labels`` and a ``value``.
    When some metrics cannot be read the fetcher raises :class:`ErrorGroup`
    carrying the groups built from the rest.
    """

    def fetch() -> RawGroups:
        try:
            families = fetch_and_filter(queries)
        except Exception as err:
            raise RuntimeError(f"error requesting cadvisor metrics endpoint: {err}") from err

        errors: list[Exception] = []
        containers: dict[str, RawMetrics] = {}
        groups: RawGroups = {"container": containers}

        for family in families:
            for metric in family.metrics:
                labels = metric.labels
                if _get_label(labels, "container_name", "container") == "POD":
                    continue

                try:
                    raw_entity_id = create_raw_entity_id(labels)
                except ValueError as err:
                    errors.append(err)
                    continue
                if not raw_entity_id:
                    continue

                container_id = extract_container_id(labels.get("id", ""))
                if not container_id:
                    errors.append(ValueError("container id not found in cAdvisor metrics"))
                    continue

                metrics = containers.setdefault(raw_entity_id, {"containerID": container_id})

                if family.name == "container_memory_usage_bytes":
                    image = labels.get("image", "")
                    if not image:
                        errors.append(ValueError("container image not found in cAdvisor metrics"))
                        continue
                    metrics["containerImageID"] = image
                else:
                    metrics[family.name] = metric.value

        if errors:
            raise ErrorGroup(errors, recoverable=True, groups=groups)
        return groups

    return fetch