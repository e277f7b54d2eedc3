# ipfssearch

Building blocks for a search engine over IPFS:

- a layered configuration (built-in defaults, then a YAML file, then
  environment variables) with a completeness check (`ipfssearch.config`);
- access to an IPFS node's HTTP API (`stat`, `ls`) and gateway URLs
  (`ipfssearch.ipfs`);
- a DHT sniffer that watches provider records written to a datastore,
  filters them and publishes the resources it finds through a publisher
  you supply (`ipfssearch.sniffer`);
- small helpers: CID and base32/base58 decoding (`ipfssearch.multiformats`),
  an in-memory hierarchical-key datastore with a put hook
  (`ipfssearch.datastore`), an HTTP body getter (`ipfssearch.httpgetter`)
  and a TCP dialer that retries refused connections (`ipfssearch.dialer`).

## Installation

```
pip install .
```

To run the tests as well:

```
pip install ".[test]"
pytest
```

## Command line

The `ipfs-search` command manages configuration. The global option
`-c FILE` / `--config FILE` names the YAML configuration file.

```
ipfs-search -c config.yml config generate   # write the default configuration to FILE
ipfs-search -c config.yml config check      # load and verify the configuration
ipfs-search -c config.yml config dump       # print the effective configuration
```

`config generate` needs `-c`. `config check` prints
`Configuration checked.` on success; otherwise it prints every setting that
is missing or left empty to standard error and exits with status 1.

### Configuration sources

Values are read in this order, each overriding the previous one:

1. built-in defaults (`config.default()`);
2. the YAML file given with `-c`;
3. environment variables: `IPFS_API_URL`, `IPFS_GATEWAY_URL`,
   `OPENSEARCH_URL`, `REDIS_ADDRESSES` (comma separated),
   `OTEL_TRACE_SAMPLER_ARG`, `OTEL_EXPORTER_JAEGER_ENDPOINT`,
   `SNIFFER_LASTSEEN_EXPIRATION`, `SNIFFER_LASTSEEN_PRUNELEN`,
   `SNIFFER_BUFFER_SIZE`, `HASH_WORKERS`, `FILE_WORKERS`,
   `DIRECTORY_WORKERS`, `IPFS_MAX_CONNECTIONS` and
   `EXTRACTOR_MAX_CONNECTIONS`.

The YAML sections are `ipfs`, `opensearch`, `redis`, `instrumentation`,
`sniffer`, `indexes`, `queues` and `workers`. Durations are written the
usual way (`150ms`, `5m`, `1h0m0s`) and sizes with binary units (`256KB`,
`5MB`) or as plain byte counts.

## Library use

Loading and checking configuration:

```python
from ipfssearch import config

cfg = config.get("config.yml")   # defaults, file, then environment
cfg.check()                      # raises ConfigError listing missing fields
print(cfg.to_yaml())
```

Asking an IPFS node about a resource:

```python
from ipfssearch.config import default
from ipfssearch.httpgetter import make_session
from ipfssearch.ipfs import IPFS
from ipfssearch.types import AnnotatedResource, Protocol, Resource

resource = AnnotatedResource(resource=Resource(Protocol.IPFS, "QmS4ustL54uo8FzR9455qaxZwuMiUhyvMcX9Ba8nUH4uVv"))
ipfs = IPFS(default().ipfs, make_session(100))
ipfs.stat(resource)          # fills in and returns resource.stat (type and size)
for entry in ipfs.ls(resource):
    print(entry)
print(ipfs.gateway_url(resource))
```

Unreferenced files whose size equals `partial_size` are reported as
`ResourceType.PARTIAL`. Errors that mean the content itself is broken are
raised as `InvalidResourceError`; other API failures are raised as
`IPFSError`.

Decoding provider record keys:

```python
from ipfssearch.datastore import Key
from ipfssearch.eventsource import key_to_cid, key_to_peer_id

key = Key("/providers/CIQDWKPBHXLJ3XVELRJZA2SYY7OGCSX6FRSIZS2VQQPVKOA2Z4VXN2I/CIQO7FK6IWMEVZU2QU6QRJKMCLW4DXQGSVSVB3V56Y272TB3IPSBGFQ")
print(key_to_cid(key), key_to_peer_id(key))
```

### Sniffing

`Sniffer(config.sniffer, datastore, publisher_factory)` wraps a datastore;
use the one returned by `Sniffer.batching()` in its place. Every provider
record put into the wrapped store becomes a `Provider`, goes through a
`LastSeenFilter` and a `CidFilter` (raw and dag-protobuf CIDs only) and is
published as an `AnnotatedResource` with source `SNIFFER` and priority 9.

The publisher factory is any object with an `async new_publisher()` method
returning an object with `async publish(item, priority)` (see
`ipfssearch.queuer.PublisherFactory` and `Publisher`). `await
Sniffer.sniff()` keeps running, restarting after errors (including a
publish wait longer than five minutes), until its task is cancelled.

## What this package does not do

- There is no crawler and no `add` or `crawl` command: resources are not
  fetched, indexed or extracted.
- There is no message-queue client; publishing goes through the factory you
  pass to `Sniffer`.
- The `opensearch`, `redis`, `indexes`, `queues`, `workers` and
  `instrumentation` settings are read, checked and written, but nothing in
  the package connects to those services or installs tracing.
- The datastore is in memory only (`MapDatastore`); it does not join a DHT
  by itself.