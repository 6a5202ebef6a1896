# edgeserve

A small HTTP/1.x server. It listens on one socket, waits for readiness with
the standard `selectors` module, and hands each ready client connection to a
fixed pool of worker threads. A connection is watched for one event at a
time: when an event is reported it is taken out of the selector, and the
worker re-arms it when it has finished. Idle connections are closed by a
timer queue.

## What it serves

- `GET` requests for files relative to the working directory. The path `/`
  maps to `index.html` and a query string is ignored. The content type comes
  from the first `.` in the file name onwards (`.html`, `.htm`, `.txt`, `.c`,
  `.png`, `.jpg`, `.gif`, `.bmp`, `.ico`, `.avi`, `.mp3`, `.doc`, `.gz`);
  anything else is sent as `text/html`.
- `POST` requests carrying an image, with a `Content-length` header (spelled
  exactly that way). The image is decoded with Pillow, a copy is saved as
  `receive.bmp` in the working directory, and the image is sent back encoded
  as PNG.
- `Connection: keep-alive`. A kept-alive connection is given five minutes
  before the next request. A newly accepted connection must send something
  within 500 ms; after a response on a connection that is not kept alive it
  has two seconds.

Errors are answered with a small HTML page and `Connection: close`:

- `400 Bad Request` for a malformed request line or header, or an image that
  cannot be decoded;
- `400 Bad Request: Lack of argument (Content-length)` for a `POST` without
  `Content-length`;
- `404 Not Found!` for a file that cannot be opened.

## Install

```
pip install .
```

With the test dependencies:

```
pip install ".[test]"
```

## Run

```
edgeserve
```

Options:

- `--port` (default 8888); ports below 1024 or above 65535 are refused;
- `--threads` (default 4);
- `--queue-size` (default 65535).

Out-of-range thread or queue sizes fall back to 4 threads and a queue of
1024. Stop the server with Ctrl-C.

## Use as a library

```python
from edgeserve.server import Server, socket_bind_listen

listener = socket_bind_listen(8888)
with Server(listener, 4, 65535) as server:
    server.serve_forever()
```

`Server.close()` stops `serve_forever`, drains the thread pool and closes
every socket. `Server.poll_once(timeout)` runs a single round of the loop.

The building blocks can be used on their own:

- `edgeserve.threadpool.ThreadPool` runs `func(args)` tasks from a bounded
  queue. `submit` raises `QueueFullError` or `PoolShutdownError` (both
  `ThreadPoolError`); `shutdown` takes `ShutdownOption.GRACEFUL` (drain the
  queue) or `ShutdownOption.IMMEDIATE` (drop it).
- `edgeserve.timer.TimerManager` keeps `TimerNode` deadlines in a min-heap.
  Cancelled nodes are removed lazily when they reach the front;
  `handle_expired` pops deleted or expired nodes and calls the expiry
  callback for those still holding a request.
- `edgeserve.http` has `parse_request_line`, the incremental `HeaderParser`,
  `mime_type`, `keep_alive_requested`, and the response builders
  `static_file_response`, `image_response` and `error_response`.
- `edgeserve.connection.Connection` holds the per-socket request state.
- `edgeserve.util` has non-blocking socket helpers: `read_available`,
  `read_exact`, `write_all`, `set_nonblocking` and `ignore_sigpipe`.
- `edgeserve.logstream.LogStream` formats values with `<<` into a fixed
  4000-byte `FixedBuffer`; appends that do not fit are dropped.
- `edgeserve.logfile.LogFile` appends to a file and flushes every 1024
  appends. `edgeserve.async_logging.AsyncLogging` collects lines in memory
  and writes them from a background thread at least every `flush_interval`
  seconds.
- `edgeserve.logger.Logger` builds one record and, on `finish()` (or on
  leaving a `with` block), appends ` - <file>:<line>` and passes it to
  `output`. By default records go through `AsyncLogging` to `web_server.log`
  in the working directory; `set_output(func)` sends them elsewhere.
- `edgeserve.sync` provides `CountDownLatch` and `NamedThread`.

## What it does not do

- Only `GET` and `POST` are understood; there is no `HEAD`, no chunked
  bodies and no TLS.
- Requested file names are opened as given, relative to the working
  directory; they are not confined to it. Do not expose the server to
  untrusted clients.
- The server itself does not write log records; the logging classes are
  there for code built on top of it.

## Tests

```
pytest
```