"""Pod and container data read from the kubelet's ``/pods`` endpoint."""

from __future__ import annotations

import json
import logging
from contextlib import closing
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Mapping

from kubescrape.quantity import parse_quantity

KUBELET_PODS_PATH = "/pods"

RawMetrics = dict[str, Any]
RawGroups = dict[str, dict[str, RawMetrics]]

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_WORKLOAD_KEYS = {
    "DaemonSet": "daemonsetName",
    "Deployment": "deploymentName",
    "Job": "jobName",
    "ReplicaSet": "replicasetName",
    "StatefulSet": "statefulsetName",
}


def _parse_time(raw: str | None) -> datetime | None:
    if not raw:
        return None
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def replicaset_name_to_deployment_name(name: str) -> str:
    """Drop the last ``-`` separated part of a ReplicaSet name."""
    return "-".join(name.split("-")[:-1])


def _add_workload_name(creator_kind: str, creator_name: str, metrics: RawMetrics) -> None:
    key = _WORKLOAD_KEYS.get(creator_kind)
    if key is None:
        return
    metrics[key] = creator_name
    if creator_kind == "ReplicaSet":
        deployment = replicaset_name_to_deployment_name(creator_name)
        if deployment:
            metrics["deploymentName"] = deployment


def _metadata(pod: Mapping[str, Any]) -> Mapping[str, Any]:
    return pod.get("metadata") or {}


def _spec(pod: Mapping[str, Any]) -> Mapping[str, Any]:
    return pod.get("spec") or {}


def _status(pod: Mapping[str, Any]) -> Mapping[str, Any]:
    return pod.get("status") or {}


def _pod_id(pod: Mapping[str, Any]) -> str:
    metadata = _metadata(pod)
    return f"{metadata.get('namespace', '')}_{metadata.get('name', '')}"


def _container_id(pod: Mapping[str, Any], container_name: str) -> str:
    return f"{_pod_id(pod)}_{container_name}"


def _pod_labels(pod: Mapping[str, Any]) -> dict[str, str]:
    return dict(_metadata(pod).get("labels") or {})


def _first_owner(pod: Mapping[str, Any]) -> tuple[str, str] | None:
    owners = _metadata(pod).get("ownerReferences") or []
    if not owners:
        return None
    return owners[0].get("kind", ""), owners[0].get("name", "")


def _is_fake_pending_pod(status: Mapping[str, Any]) -> bool:
    # Pods created before the API server is up are reported as Pending by the
    # kubelet while they are actually running.
    conditions = status.get("conditions") or []
    return (
        status.get("phase") == "Pending"
        and len(conditions) == 1
        and conditions[0].get("type") == "PodScheduled"
        and conditions[0].get("status") == "True"
    )


def _container_statuses(pod: Mapping[str, Any]) -> dict[str, RawMetrics]:
    statuses: dict[str, RawMetrics] = {}
    for container_status in _status(pod).get("containerStatuses") or ():
        entry: RawMetrics = {}
        statuses[_container_id(pod, container_status.get("name", ""))] = entry

        state = container_status.get("state") or {}
        restart_count = container_status.get("restartCount", 0)
        running, waiting, terminated = state.get("running"), state.get("waiting"), state.get("terminated")

        if running is not None:
            entry["status"] = "Running"
            entry["startedAt"] = _parse_time(running.get("startedAt")) or _ZERO_TIME
            entry["restartCount"] = restart_count
            entry["isReady"] = bool(container_status.get("ready", False))
        elif waiting is not None:
            entry["status"] = "Waiting"
            entry["reason"] = waiting.get("reason", "")
            entry["restartCount"] = restart_count
        elif terminated is not None:
            entry["status"] = "Terminated"
            entry["reason"] = terminated.get("reason", "")
            entry["restartCount"] = restart_count
            entry["startedAt"] = _parse_time(terminated.get("startedAt")) or _ZERO_TIME
        else:
            entry["status"] = "Unknown"
    return statuses


def _containers_data(pod: Mapping[str, Any]) -> dict[str, RawMetrics]:
    statuses = _container_statuses(pod)
    metadata, spec, status = _metadata(pod), _spec(pod), _status(pod)
    owner = _first_owner(pod)
    labels = _pod_labels(pod)

    result: dict[str, RawMetrics] = {}
    for container in spec.get("containers") or ():
        name = container.get("name", "")
        container_id = _container_id(pod, name)
        metrics: RawMetrics = {
            "containerName": name,
            "containerImage": container.get("image", ""),
            "namespace": metadata.get("namespace", ""),
            "podName": metadata.get("name", ""),
            "nodeName": spec.get("nodeName", ""),
        }

        host_ip = status.get("hostIP")
        if host_ip:
            metrics["nodeIP"] = host_ip

        resources = container.get("resources") or {}
        requests = resources.get("requests") or {}
        limits = resources.get("limits") or {}
        if "cpu" in requests:
            metrics["cpuRequestedCores"] = parse_quantity(str(requests["cpu"])).milli_value()
        if "cpu" in limits:
            metrics["cpuLimitCores"] = parse_quantity(str(limits["cpu"])).milli_value()
        if "memory" in requests:
            metrics["memoryRequestedBytes"] = parse_quantity(str(requests["memory"])).value()
        if "memory" in limits:
            metrics["memoryLimitBytes"] = parse_quantity(str(limits["memory"])).value()

        if owner is not None:
            _add_workload_name(*owner, metrics)

        metrics.update(statuses.get(container_id, {}))

        if labels:
            metrics["labels"] = dict(labels)

        result[container_id] = metrics
    return result


class PodsFetcher:
    """Fetches the pods running on a node from the kubelet."""

    def __init__(self, client, logger: logging.Logger | None = None) -> None:
        self._client = client
        self._logger = logger or logging.getLogger(__name__)

    def do_pods_fetch(self) -> RawGroups:
        """Query the kubelet and group the pods and their containers."""
        self._logger.debug("Retrieving the list of pods")

        response = self._client.get(KUBELET_PODS_PATH)
        with closing(response):
            if response.status_code != HTTPStatus.OK:
                raise RuntimeError(
                    f"error calling kubelet {KUBELET_PODS_PATH} path. "
                    f"Status code {response.status_code}"
                )
            body = response.content

        if not body:
            raise ValueError(
                f"error reading response from kubelet {KUBELET_PODS_PATH} path. Response is empty"
            )

        try:
            pod_list = json.loads(body)
        except ValueError as err:
            raise ValueError(
                f"error decoding response from kubelet {KUBELET_PODS_PATH} path. {err}"
            ) from err
        if not isinstance(pod_list, dict):
            raise ValueError(
                f"error decoding response from kubelet {KUBELET_PODS_PATH} path. "
                "expected a JSON object"
            )

        pods: dict[str, RawMetrics] = {}
        containers: dict[str, RawMetrics] = {}
        raw: RawGroups = {"pod": pods, "container": containers}

        # A pod may miss its host IP because of a kubelet bug; it is then
        # taken from any other pod or container on the node.
        missing_pod_ids: list[str] = []
        missing_container_ids: list[str] = []
        node_ip = ""

        for pod in pod_list.get("items") or ():
            pod_id = _pod_id(pod)
            pod_metrics = self._pod_data(pod)
            pods[pod_id] = pod_metrics

            if not node_ip and "nodeIP" in pod_metrics:
                node_ip = pod_metrics["nodeIP"]
            if node_ip:
                pod_metrics["nodeIP"] = node_ip
            else:
                missing_pod_ids.append(pod_id)

            for container_id, container_metrics in _containers_data(pod).items():
                containers[container_id] = container_metrics
                if not node_ip and "nodeIP" in container_metrics:
                    node_ip = container_metrics["nodeIP"]
                if node_ip:
                    container_metrics["nodeIP"] = node_ip
                else:
                    missing_container_ids.append(container_id)

        for pod_id in missing_pod_ids:
            pods[pod_id]["nodeIP"] = node_ip
        for container_id in missing_container_ids:
            containers[container_id]["nodeIP"] = node_ip

        return raw

    def _pod_data(self, pod: Mapping[str, Any]) -> RawMetrics:
        metadata, spec, status = _metadata(pod), _spec(pod), _status(pod)
        metrics: RawMetrics = {
            "namespace": metadata.get("namespace", ""),
            "podName": metadata.get("name", ""),
            "nodeName": spec.get("nodeName", ""),
        }

        self._fill_pod_status(metrics, status)

        if status.get("hostIP"):
            metrics["nodeIP"] = status["hostIP"]
        if status.get("podIP"):
            metrics["podIP"] = status["podIP"]

        start_time = _parse_time(status.get("startTime"))
        if start_time is not None:
            metrics["startTime"] = start_time

        created_at = _parse_time(metadata.get("creationTimestamp"))
        if created_at is not None:
            metrics["createdAt"] = created_at

        owner = _first_owner(pod)
        if owner is not None:
            kind, name = owner
            metrics["createdKind"] = kind
            metrics["createdBy"] = name
            _add_workload_name(kind, name, metrics)

        if status.get("reason"):
            metrics["reason"] = status["reason"]
        if status.get("message"):
            metrics["message"] = status["message"]

        labels = _pod_labels(pod)
        if labels:
            metrics["labels"] = labels

        return metrics

    def _fill_pod_status(self, metrics: RawMetrics, status: Mapping[str, Any]) -> None:
        if _is_fake_pending_pod(status):
            metrics["status"] = "Running"
            metrics["isReady"] = "True"
            metrics["isScheduled"] = "True"
            self._logger.debug("Fake Pending Pod marked as Running")
            return

        for condition in status.get("conditions") or ():
            condition_type = condition.get("type")
            if condition_type == "Ready":
                metrics["isReady"] = condition.get("status", "")
            elif condition_type == "PodScheduled":
                metrics["isScheduled"] = condition.get("status", "")

        metrics["status"] = status.get("phase", "")