# resmetrics

`resmetrics` reads CPU and memory usage from the kubelets of a cluster and
turns it into node and pod metrics. It has no dependencies outside the
standard library.

## What it contains

- `resmetrics.decode.decode_batch(data, default_time, node_name)` parses the
  Prometheus text a kubelet serves at `/metrics/resource` into a
  `MetricsBatch`. It reads `node_cpu_usage_seconds_total`,
  `node_memory_working_set_bytes`, `container_cpu_usage_seconds_total`,
  `container_memory_working_set_bytes` and `container_start_time_seconds`;
  samples without a timestamp get `default_time`. The node point is dropped if
  it lacks CPU or memory, and a pod is dropped if any of its containers does.
  Input that cannot be parsed raises `DecodeError`.
- `resmetrics.client.KubeletClient(resolver, default_port, scheme,
  use_node_status_port)` builds the URL of a node's kubelet and fetches and
  decodes its metrics with `get_metrics(node, timeout)`. The address comes from
  the `resolver` you pass in, an object with a `node_address(node)` method. A
  non-200 answer raises `KubeletRequestError`. `fetch(url, node_name, timeout)`
  does the same for a URL you already have.
- `resmetrics.scraper.Scraper(node_lister, client, scrape_timeout, clock)`
  scrapes every listed node in parallel, each with its own timeout, and merges
  the results with `scrape(timeout)`. A node that fails or times out is left
  out; the others still count. Request counts, durations and last request times
  are recorded in the metrics `register_scraper_metrics` hands to a register
  function.
- `resmetrics.api.NodeMetricsStorage` and `resmetrics.api.PodMetricsStorage`
  answer `list` and `get` requests through a metrics getter and a lister you
  supply. They filter with the label and field selectors of `ListOptions`,
  sort nodes by name and pods by namespace and name, raise `NotFoundError` for
  missing objects, and render results with `convert_to_table`.
  `build_api_group(pod, node)` maps the `v1beta1` version to both storages.
- `resmetrics.selectors` has `LabelSelector` and `FieldSelector`
  (`everything()`, `from_set(...)`, `parse("key=value,key!=value")`).
- `resmetrics.table` builds `Table` rows with one quantity column per
  resource and a `Window` column.
- `resmetrics.quantity` parses and prints resource quantities (`10m`, `5Mi`,
  `1e3`) with `parse_quantity`, and formats durations with `format_duration`.
- `resmetrics.options.Options` and `resmetrics.options.KubeletClientOptions`
  hold the server and kubelet settings. `validate()` returns a list of error
  messages; `KubeletClientOptions.config(rest_config)` builds a
  `KubeletClientConfig`.
- `resmetrics.monitoring` provides simple histograms, counters and gauges,
  and the freshness histogram registered by `register_api_metrics`.
- `resmetrics.clock` has `RealClock` and a settable `FakeClock` for tests.

## Example

```python
from datetime import datetime, timezone

from resmetrics.decode import decode_batch

text = b"""
node_cpu_usage_seconds_total 357.35491 1633253809720
node_memory_working_set_bytes 1.616273408e+09 1633253809720
"""
batch = decode_batch(text, datetime.now(timezone.utc), "node1")
point = batch.nodes["node1"]
print(point.cumulative_cpu_used, point.memory_usage)
```

## What it does not do

- There is no command and no HTTP server: the API storages are objects to call
  from your own code, not a served API.
- Nothing keeps scraped batches over time or turns cumulative CPU into usage
  rates; `NodeMetricsStorage` and `PodMetricsStorage` need a metrics getter
  that you provide.
- There is no node address resolver; `KubeletClient` uses the one you pass in.
- `Options` holds and checks settings only; it does not parse a command line
  or load cluster credentials.

## Tests

```
pip install -e .[test]
pytest
```