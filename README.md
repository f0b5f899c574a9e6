# prisma-runtime

The runtime layer a Prisma client needs to talk to a database. It finds and
downloads the Prisma CLI and engine binaries for the current platform, runs the
CLI, starts and stops the query engine process, and sends GraphQL requests
either to that local engine or to a Prisma Data Proxy.

Install with `pip install prisma-runtime`; the `test` extra adds pytest and
responses for running the test suite.

## Platform detection

```python
from prisma_runtime import platform

platform.name()                   # "linux", "darwin", "windows", ...
platform.binary_platform_name()   # e.g. "debian-openssl-1.1.x" or "linux-musl"
platform.check_for_extension("windows", "/some.gz")  # "/some.exe.gz"
platform.parse_linux_distro('ID="fedora"')           # "rhel"
platform.parse_openssl_version("OpenSSL 1.0.2g  1 Mar 2016")  # "1.0.x"
```

On Linux the distribution is read from `/etc/os-release` and the OpenSSL
version from `openssl version -v`; unknown distributions count as `debian`
and an unreadable OpenSSL version as `1.1.x`.

## Fetching binaries

```python
from prisma_runtime import binaries

cache = binaries.global_cache_dir()
binaries.fetch_native(cache)      # CLI plus every engine, skipped when cached
path = binaries.download_engine("query-engine", cache)
```

`fetch_native` raises `BinariesError` when the directory is empty or not
absolute, and when any download fails. Binaries are fetched gzip-compressed,
written to a `.tmp` file first and then moved into place with executable
permissions. The pinned versions are `binaries.PRISMA_VERSION` and
`binaries.ENGINE_VERSION`; the engines handled are listed in
`binaries.ENGINES`. The download URL templates can be overridden with the
`PRISMA_CLI_URL` and `PRISMA_ENGINE_URL` environment variables.

Engine bytes bundled with an application can be written to the shared unpack
directory with `prisma_runtime.unpack.unpack(data, name, version)`, which
returns the engine's path and leaves an existing file alone.

## Running the Prisma CLI

```python
from prisma_runtime import cli

cli.run(["db", "push"], output=True)
```

`run` fetches the binaries into the global cache directory, then starts the
CLI with the environment from `cli.build_env`. Each engine path honours
`PRISMA_QUERY_ENGINE_BINARY`, `PRISMA_MIGRATION_ENGINE_BINARY`,
`PRISMA_INTROSPECTION_ENGINE_BINARY` and `PRISMA_FMT_BINARY` when set. Without
`output=True` the CLI's output is discarded. A non-zero exit raises
`RuntimeError`.

## Query engine

```python
from prisma_runtime.query_engine import QueryEngine
from prisma_runtime.protocol import RecordNotFoundError

engine = QueryEngine(schema_text, has_binary_targets=False)
engine.connect()
try:
    user = engine.do({"query": "query { result: findUniqueUser(...) { id } }", "variables": {}})
except RecordNotFoundError:
    user = None
finally:
    engine.disconnect()
```

`connect` loads `e2e.env`, `db/e2e.env` and `prisma/e2e.env` if present, then
picks an engine binary: a `PRISMA_QUERY_ENGINE_BINARY` override (which must
exist), replaced by a `prisma-query-engine-*` binary in the working directory,
replaced in turn by one in the global unpack directory. The binary's
`--version` must match `binaries.ENGINE_VERSION` unless the override was
given. The engine is then started on a free local port and polled on
`/status` until it answers.

`do` returns the `result` of the response; the engine's "record to update /
delete not found" errors raise `RecordNotFoundError`, other errors raise
`EngineError`. `batch` returns the decoded JSON response as is. Queries sent
after `disconnect` raise `EngineError`.

## Data Proxy

```python
from prisma_runtime.data_proxy import DataProxyEngine

engine = DataProxyEngine(schema_text, "prisma://proxy.example.com/?api_key=placeholder")
engine.connect()          # reads the api key and uploads the schema
result = engine.do(payload)
```

The remote base URI is built by `get_cloud_uri` from the connection host, the
pinned Prisma version and `hash_schema(schema)`, the SHA-256 of the
base64-encoded schema. When the proxy answers 404 the schema is uploaded again
and the request is retried once.

## Wire types

`prisma_runtime.protocol` holds `GQLRequest`, `GQLBatchRequest`,
`GQLResponse`, `GQLBatchResponse` and `GQLError`, plus `parse_response` and
`result_or_raise`. `prisma_runtime.transport.request` sends a raw payload and
raises `SchemaNotFoundError` on 404; `get_port` returns a free local port.

## What this package does not do

It does not generate client code from a schema, provides no query builder or
model classes, and has no command-line entry point of its own; it is the layer
such a client would be built on.