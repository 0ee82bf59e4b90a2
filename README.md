# kubescrape

A library for collecting data from a Kubernetes kubelet and grouping it into
raw metrics per entity: node, pod, container, volume and network.

## Install

    pip install kubescrape

To run the test suite:

    pip install "kubescrape[test]"
    pytest

## Modules

- `kubescrape.connector`
  - `ConnectorConfig` holds the node name and IP, the API server host, the
    bearer token file, TLS settings for the API server, an optional kubelet
    port and scheme, and a request timeout.
  - `DefaultConnector(config, node_port_getter, logger=None)` gets the
    kubelet port. It takes the port from the config or, failing that, calls
    `node_port_getter(node_name)`. It works out the scheme from the port:
    10255 means http and 10250 means https. If the config sets a scheme, that
    scheme is used. For any other port both schemes are tried. The connector
    then checks `/healthz` on the node IP. If that fails, it checks through
    the API server proxy at `/api/v1/nodes/<node>/proxy/`. Local https
    requests skip certificate verification. They carry a bearer token that is
    read again from the token file on every request.
  - `StaticConnector(session, url)` returns a fixed URL and session and does
    no probing.
  - `check_connection(conn)` raises `ConnectionError` unless `/healthz`
    answers 200.
- `kubescrape.client.KubeletClient(connector, max_retries=0, logger=None)`
  connects through the connector. `get(url_path)` sends a GET request to a
  path below the kubelet endpoint. With a `requests.Session` it retries
  connection errors and 5xx answers with a linear backoff. It makes at most
  `max_retries` attempts, and always at least one.
- `kubescrape.pods.PodsFetcher(client, logger=None)` reads `/pods` through
  `do_pods_fetch()`. It builds `pod` and `container` groups that hold status,
  readiness, IPs, start and creation times, owner and workload names,
  requests, limits and labels. Pending pods that show only a `PodScheduled`
  condition are reported as running. A missing node IP is taken from another
  pod or container on the node.
- `kubescrape.cadvisor`
  - `cadvisor_fetch_func(fetch_and_filter, queries)` turns metric families
    into container metrics keyed by `namespace_pod_container`. It adds
    `containerID`, `containerImageID` and one value for each family.
  - `create_raw_entity_id(labels)` and `extract_container_id(value)` are the
    helpers it uses.
  - `ErrorGroup` collects several errors, together with the groups that could
    still be built.
- `kubescrape.stats`
  - `get_metrics_data(client)` fetches and decodes `/stats/summary`.
  - `group_stats_summary(summary)` returns `(groups, errors)`. The groups are
    `node`, `pod`, `container` and `volume`.
  - The module also holds entity ID and entity type generators such as
    `from_raw_groups_entity_type_generator`.
- `kubescrape.grouper`
  - `KubeletGrouper(client, node_getter, fetchers=(), default_network_interface="", logger=None)`
    runs the fetchers and reads the stats summary. It asks `node_getter` for
    the node object and merges everything without overwriting keys. The node
    entity gets labels, allocatable and capacity quantities, the summed
    container CPU and memory requests, conditions mapped to 1, 0 or -1,
    `unschedulable` and `kubeletVersion`.
  - Any failure is raised as `ErrorGroup`.
  - `fill_groups_and_merge_non_existent` does the merging.
- `kubescrape.transform`
  - `one_metric_per_label` and `prefix_from_map_int` reshape mappings into
    one metric per key.
  - `one_attribute_per_allocatable` and `one_attribute_per_capacity` turn
    resource lists into attributes such as `allocatableCpuCores` and
    `capacityMemoryBytes`.
  - `camelcase` builds those attribute names.
- `kubescrape.network.from_raw_with_fallback_to_default_interface(metric_key)`
  reads a metric from an entity. If the entity does not have it, the value is
  taken from the entity's default-interface metrics.
- `kubescrape.quantity` covers resource quantities. `parse_quantity` reads
  strings such as `"1985m"`, `"2Gi"` or `"1e3"` and returns a `Quantity`,
  which has `value()`, `milli_value()` and `as_approximate_float()`.

## Example

    import requests

    from kubescrape.client import KubeletClient
    from kubescrape.connector import StaticConnector
    from kubescrape.pods import PodsFetcher

    connector = StaticConnector(requests.Session(), "http://localhost:10255")
    client = KubeletClient(connector, max_retries=3)
    groups = PodsFetcher(client).do_pods_fetch()
    for pod_id, metrics in groups["pod"].items():
        print(pod_id, metrics["status"])

Errors are raised as exceptions.

## What it does not do

- There is no command-line program and no scheduler. It is a library to call
  from your own code.
- It has no Kubernetes API client. `DefaultConnector` needs a
  `node_port_getter` callable, and `KubeletGrouper` needs a `node_getter`
  callable that returns the node object as a mapping. You supply both.
- It does not fetch or parse Prometheus text itself. `cadvisor_fetch_func`
  needs a `fetch_and_filter` callable. That callable must return metric
  families that have `name` and `metrics`, where each metric has `labels`
  and `value`.
- It does not send the grouped data anywhere. It does not turn the data into
  reported entities or samples.