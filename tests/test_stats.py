import json

import pytest

from kubescrape.stats import (
    STATS_SUMMARY_PATH,
    add_uint64_raw_metric,
    from_label_get_namespace,
    from_raw_entity_id_group_entity_id_generator,
    from_raw_groups_entity_id_generator,
    from_raw_groups_entity_type_generator,
    get_metrics_data,
    group_stats_summary,
)


class FakeResponse:
    def __init__(self, status_code, content):
        self.status_code = status_code
        self.content = content
        self.closed = False

    def close(self):
        self.closed = True


class FakeClient:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.paths = []

    def get(self, path):
        self.paths.append(path)
        if self.error is not None:
            raise self.error
        return self.response


def fs_stats(base):
    return {
        "availableBytes": base + 1,
        "capacityBytes": base + 2,
        "usedBytes": base + 3,
        "inodesFree": base + 4,
        "inodes": base + 5,
        "inodesUsed": base + 6,
    }


def make_summary():
    return {
        "node": {
            "nodeName": "node-a",
            "cpu": {"usageNanoCores": 11, "usageCoreNanoSeconds": 12},
            "memory": {
                "usageBytes": 21,
                "availableBytes": 22,
                "workingSetBytes": 23,
                "rssBytes": 24,
                "pageFaults": 25,
                "majorPageFaults": 26,
            },
            "network": {
                "name": "eth0",
                "rxBytes": 31,
                "txBytes": 32,
                "rxErrors": 3,
                "txErrors": 4,
                "interfaces": [
                    {"name": "eth0", "rxBytes": 31, "txBytes": 32, "rxErrors": 3, "txErrors": 4},
                    {"name": "sit0", "rxBytes": 0, "txBytes": 0},
                ],
            },
            "fs": fs_stats(40),
            "runtime": {"imageFs": fs_stats(50)},
        },
        "pods": [
            {
                "podRef": {"name": "web", "namespace": "default"},
                "network": {"rxBytes": 61, "txBytes": 62, "rxErrors": 0, "txErrors": 0, "interfaces": []},
                "volume": [
                    dict(name="data", pvcRef={"name": "claim", "namespace": "default"}, **fs_stats(70)),
                ],
                "containers": [
                    {
                        "name": "app",
                        "cpu": {"usageNanoCores": 81},
                        "memory": {"usageBytes": 82, "workingSetBytes": 83},
                        "rootfs": fs_stats(90),
                    }
                ],
            }
        ],
    }


def test_get_metrics_data_decodes_summary():
    summary = make_summary()
    response = FakeResponse(200, json.dumps(summary).encode())
    client = FakeClient(response)
    assert get_metrics_data(client) == summary
    assert client.paths == [STATS_SUMMARY_PATH]
    assert response.closed


def test_get_metrics_data_non_ok_status():
    client = FakeClient(FakeResponse(500, b"boom"))
    with pytest.raises(RuntimeError, match="received non-OK response code from kubelet: 500") as info:
        get_metrics_data(client)
    assert "boom" in str(info.value)


def test_get_metrics_data_malformed_json():
    client = FakeClient(FakeResponse(200, b"P{}"))
    with pytest.raises(ValueError, match="unmarshaling the response body"):
        get_metrics_data(client)


def test_get_metrics_data_wraps_request_failure():
    client = FakeClient(error=ConnectionRefusedError("refused"))
    with pytest.raises(ConnectionError, match="performing GET request to kubelet endpoint") as info:
        get_metrics_data(client)
    assert isinstance(info.value.__cause__, ConnectionRefusedError)


def test_group_stats_summary_node_metrics():
    summary = make_summary()
    groups, errors = group_stats_summary(summary)
    assert errors == []
    node = groups["node"]["node-a"]
    assert node["nodeName"] == "node-a"
    assert node["usageNanoCores"] == summary["node"]["cpu"]["usageNanoCores"]
    assert node["memoryRssBytes"] == summary["node"]["memory"]["rssBytes"]
    assert node["memoryMajorPageFaults"] == summary["node"]["memory"]["majorPageFaults"]
    assert node["errors"] == summary["node"]["network"]["rxErrors"] + summary["node"]["network"]["txErrors"]
    assert node["fsInodesUsed"] == summary["node"]["fs"]["inodesUsed"]
    assert node["runtimeUsedBytes"] == summary["node"]["runtime"]["imageFs"]["usedBytes"]
    assert set(node["interfaces"]) == {"eth0", "sit0"}
    assert "errors" not in node["interfaces"]["sit0"]
    assert node["interfaces"]["eth0"]["rxBytes"] == summary["node"]["network"]["rxBytes"]


def test_group_stats_summary_pod_container_volume():
    summary = make_summary()
    groups, errors = group_stats_summary(summary)
    assert errors == []
    assert list(groups["pod"]) == ["default_web"]
    pod_key = next(iter(groups["pod"]))
    pod = groups["pod"][pod_key]
    assert pod["podName"] == "web"
    assert pod["namespace"] == "default"
    assert pod["interfaces"] == {}

    (container_key, container), = groups["container"].items()
    assert container_key.startswith(pod_key + "_")
    assert container["containerName"] == "app"
    assert container["podName"] == "web"
    assert container["workingSetBytes"] == summary["pods"][0]["containers"][0]["memory"]["workingSetBytes"]
    assert container["fsCapacityBytes"] == summary["pods"][0]["containers"][0]["rootfs"]["capacityBytes"]

    (volume_key, volume), = groups["volume"].items()
    assert volume_key.startswith(pod_key + "_")
    assert volume["volumeName"] == "data"
    assert volume["pvcName"] == "claim"
    assert volume["pvcNamespace"] == "default"
    assert volume["fsAvailableBytes"] == summary["pods"][0]["volume"][0]["availableBytes"]


def test_group_stats_summary_missing_pods():
    summary = make_summary()
    del summary["pods"]
    groups, errors = group_stats_summary(summary)
    assert "node-a" in groups["node"]
    assert [str(e) for e in errors] == [
        "pods data not found, possible data error in /stats/summary response"
    ]


def test_group_stats_summary_collects_identifier_errors():
    summary = make_summary()
    summary["node"]["nodeName"] = ""
    summary["pods"][0]["containers"].append({"name": ""})
    summary["pods"][0]["volume"].append({"name": ""})
    summary["pods"].append({"podRef": {"name": "lonely"}})
    groups, errors = group_stats_summary(summary)
    assert groups["node"] == {}
    assert len(groups["pod"]) == 1
    assert len(groups["container"]) == 1
    assert sorted(str(e) for e in errors) == sorted([
        "empty node identifier, possible data error in /stats/summary response",
        "empty container identifier, possible data error in /stats/summary response",
        "empty volume identifier, possible data error in /stats/summary response",
        "empty pod identifier, possible data error in /stats/summary response",
    ])


def test_group_stats_summary_rejects_none():
    with pytest.raises(ValueError):
        group_stats_summary(None)


def test_add_uint64_raw_metric_skips_none():
    raw = {}
    add_uint64_raw_metric(raw, "present", 5)
    add_uint64_raw_metric(raw, "absent", None)
    assert raw == {"present": 5}


def test_entity_id_generator_from_key():
    groups, _ = group_stats_summary(make_summary())
    pod_key = next(iter(groups["pod"]))
    generate = from_raw_groups_entity_id_generator("podName")
    assert generate("pod", pod_key, groups) == "web"


def test_entity_id_generator_missing_and_wrong_type():
    groups = {"pod": {"x": {"count": 3}}}
    with pytest.raises(LookupError, match='"podName" not found for "pod"'):
        from_raw_groups_entity_id_generator("podName")("pod", "x", groups)
    with pytest.raises(TypeError, match='incorrect type of "count" for "pod"'):
        from_raw_groups_entity_id_generator("count")("pod", "x", groups)


def test_entity_id_from_raw_entity_id_strips_namespace():
    groups, _ = group_stats_summary(make_summary())
    pod_key = next(iter(groups["pod"]))
    generate = from_raw_entity_id_group_entity_id_generator("namespace")
    assert generate("pod", pod_key, groups) == "web"


def test_entity_id_from_raw_entity_id_errors():
    groups = {"pod": {"default_": {"namespace": "default"}}}
    generate = from_raw_entity_id_group_entity_id_generator("namespace")
    with pytest.raises(ValueError, match="generated entity ID is empty"):
        generate("pod", "default_", groups)
    with pytest.raises(LookupError):
        generate("pod", "missing", groups)


def test_entity_type_for_node():
    assert from_raw_groups_entity_type_generator("node", "node-a", {}, "prod") == "k8s:prod:node"


def test_entity_type_for_container():
    groups, _ = group_stats_summary(make_summary())
    container_key = next(iter(groups["container"]))
    result = from_raw_groups_entity_type_generator("container", container_key, groups, "prod")
    assert result == "k8s:prod:default:web:container"


def test_entity_type_for_other_groups_uses_namespace():
    groups, _ = group_stats_summary(make_summary())
    pod_key = next(iter(groups["pod"]))
    result = from_raw_groups_entity_type_generator("pod", pod_key, groups, "prod")
    assert result.split(":") == ["k8s", "prod", "default", "pod"]


def test_entity_type_errors():
    with pytest.raises(LookupError, match='"pod" not found'):
        from_raw_groups_entity_type_generator("pod", "x", {}, "prod")
    with pytest.raises(LookupError, match='entity data "x" not found for "pod"'):
        from_raw_groups_entity_type_generator("pod", "x", {"pod": {}}, "prod")
    with pytest.raises(ValueError, match='empty namespace for generated entity type for "pod"'):
        from_raw_groups_entity_type_generator("pod", "x", {"pod": {"x": {"namespace": ""}}}, "prod")
    with pytest.raises(ValueError, match='empty values for generated entity type for "container"'):
        from_raw_groups_entity_type_generator(
            "container", "x", {"container": {"x": {"namespace": "ns", "podName": ""}}}, "prod"
        )
    with pytest.raises(TypeError):
        from_raw_groups_entity_type_generator("pod", "x", {"pod": {"x": {"namespace": 1}}}, "prod")


def test_from_label_get_namespace():
    assert from_label_get_namespace({"namespace": "default"}) == "default"
    assert from_label_get_namespace({"namespace": 3}) == ""
    assert from_label_get_namespace({}) == ""