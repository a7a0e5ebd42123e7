# msgstore

The skeleton of a message storage service, built on asyncio. It has
components for MongoDB and Kafka and an HTTP server, and it manages their
lifecycle. Each component is started with retries and exponential backoff,
with optional random jitter. On SIGINT or SIGTERM the HTTP server stops first,
and then the components stop in reverse order, within a configurable shutdown
timeout.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Running

```
msgstore [--config PATH]
```

The command reads its configuration from `./config/config.yaml` unless you
give `--config`. The path is taken relative to the working directory. A
missing or empty file raises `msgstore.config.ConfigError`.

The command returns exit status 1 in two cases: the application cannot be
built, or one of its components does not start after its retries. Otherwise
it runs until SIGINT or SIGTERM, shuts down, and returns 0. A failed shutdown
is logged; it does not change the exit status.

## What the package does not do

- **No Kafka client.** `msgstore.kafka.Kafka` gets its reader and writer
  through factories that the caller passes in. The `msgstore` command creates
  `Kafka` without factories. Its startup therefore checks that the broker
  accepts TCP connections, then fails with `KafkaError` ("no reader or writer
  factory configured"), and the command exits with status 1. To consume or
  publish, use `Kafka` from your own code and give it factories.
- **No routes on the HTTP server.** It serves an empty `aiohttp` application.
- **No message storage operations.** The MongoDB component only pings the
  server and closes the client. `get_db` returns a database handle for your
  own code to use.
- **No gRPC server.** `grpc_enable` is read from the configuration, but
  nothing uses it.

## Configuration

The file is YAML, with one section per subsystem. You can write durations as
strings such as `500ms`, `1s` or `1m30s`. A bare integer counts as
nanoseconds. Every duration is stored as seconds, in a float.

```yaml
app:
  http_enable: true
  grpc_enable: false
  shutdown_timeout: 10s

retry:
  attempts: 3
  initial: 1s
  max: 30s
  factor: 2.0
  jitter: true

http:
  addr: ":8080"
  idle_timeout: 60s

mongo:
  addr: "localhost:27017"
  username: "user"
  password: "password"
  db_name: "messages"
  connect_timeout: 5s
  max_pool_size: 10

kafka:
  address: "localhost:9092"
  network: "tcp"
  test-topic: "messages"
  group-id: "msgstore"
  commitBackoff:
    attempts: 3
```

### Environment variables

These environment variables take precedence over the file:

| Variable | Setting |
|---|---|
| `APP_HTTP_ENABLED` | `app.http_enable` |
| `APP_GRPC_ENABLED` | `app.grpc_enable` |
| `HTTP_ADDR` | `http.addr` |
| `HTTP_READ_HEADER_TIMEOUT` | `http.read_header_timeout` |
| `HTTP_READ_TIMEOUT` | `http.read_timeout` |
| `HTTP_WRITE_TIMEOUT` | `http.write_timeout` |
| `HTTP_IDLE_TIMEOUT` | `http.idle_timeout` |

### How the settings are used

- **Retry defaults.** The `retry` section controls component startup and the
  pauses in the Kafka consumer. If a retry value is missing or out of range,
  `msgstore.retry.sanitize` replaces it with a safe value: 3 attempts, a 1 s
  initial delay, a 30 s maximum delay, or a growth factor of 2.
- **Kafka commit attempts.** `kafka.commitBackoff.attempts` sets how many
  times an offset commit is tried. The Kafka `fetchBackoff` section is read,
  but nothing uses it.
- **Network.** `kafka.network` may be `tcp`, `tcp4` or `tcp6`.
- **HTTP address.** The address has the form `host:port`. An empty address
  means port 80 on all interfaces.
- **HTTP timeouts.** Of the HTTP timeouts, only `idle_timeout` is applied. It
  becomes the keep-alive timeout.

## Logging

`msgstore.logger.setup_logging(stream)` sets up the `msgstore` logger:

- it logs at DEBUG;
- it prints through a `PrettyHandler`;
- it does not propagate to parent loggers.

Each record is printed with:

- a timestamp;
- the level (`DEBUG`, `INFO`, `WARN`, `ERROR`);
- the message;
- any attributes, one per line.

You pass attributes with `extra={"attrs": {...}}`:

```python
import sys
from msgstore.logger import setup_logging

log = setup_logging(sys.stdout)
log.info("stored", extra={"attrs": {"db": {"name": "messages"}, "count": 3}})
```

How attributes are shown:

- Nested mappings are flattened into dotted keys, such as `db.name`.
- An exception value is shown with its chain of causes.
- `PrettyHandler.with_attrs` and `with_group` return handlers that add
  attributes to every record, or nest them under a group name.

Colours are used when standard output is a terminal, or when `FORCE_COLOR` is
set. `NO_COLOR` or `ANSI_COLORS_DISABLED` turns them off.

## Library use

### Retries

`msgstore.retry.do(cfg, fn)` awaits `fn()` until it succeeds. Between
attempts it sleeps for a delay that grows each time. When the attempts run
out, it re-raises the last error.

```python
import asyncio
from msgstore import retry
from msgstore.config import RetryConfig

async def ping():
    ...

asyncio.run(retry.do(RetryConfig(attempts=5, initial=0.5), ping))
```

`Backoff(cfg)` is for loops that pause between failures:

- `await backoff.sleep()` grows the delay and waits;
- `backoff.reset()` returns the delay to its initial value.

### Components

`msgstore.component.Container` works with objects that have a `name` and
async `start()` and `stop()` methods.

- `start_all()` starts them in the order they were added, using `retry.do`.
- `stop_all()` stops them in reverse order.
- Both collect failures and raise them together as an `ExceptionGroup`.

### The application

`msgstore.app.App(cfg, log)` builds the MongoDB and Kafka components, plus the
HTTP server when it is enabled.

- `await app.start()` starts the components and then serves HTTP in the
  background.
- `await app.shutdown(timeout)` stops everything once. If anything fails or
  the timeout passes, it raises an `ExceptionGroup`.

### Kafka

`msgstore.kafka.Kafka(cfg, log, reader_factory, writer_factory)` takes two
factories:

- `reader_factory(address, topic, group_id)` must return an object with async
  `fetch_message()`, `commit_messages(*messages)` and `close()` methods;
- `writer_factory(address, topic)` must return an object with async
  `write_messages(*messages)` and `close()` methods.

Records are `msgstore.kafka.Message` values.

- `write_message(data)` publishes one message.
- `add_delivery_handler(handler)` registers an async handler, which is called
  with each payload.
- `start_consuming()` reads messages until its task is cancelled. A message's
  offset is committed only after every handler has succeeded. A message whose
  handling failed is left uncommitted.

Errors are subclasses of `KafkaError`: `EnsureConnectionError`,
`WriteMessageError`, `FetchMessageError` and `CommitMessageError`.

### MongoDB

`msgstore.mongodb.MongoDB(cfg.mongo, log)` wraps a `pymongo` client.

- `start()` pings the server and raises `PingError` on failure.
- `stop()` closes the client and raises `DisconnectError` on failure.
- `get_db(name)` returns a database handle.