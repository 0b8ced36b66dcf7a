# rainax

The core of a download manager as a plain Python library.

It decides whether a URL belongs to yt-dlp (video and audio platforms) or
should be fetched as a direct file. It tracks each download through a strict
status state machine and keeps a queue with a concurrency limit. It parses
yt-dlp's progress output and builds its command lines. It also serves a small
JSON API on the loopback interface, so that a browser extension can hand URLs
to the application, and it offers a loopback signal that keeps a single
instance running.

The package uses only the standard library.

## Installing

Install with pip from a checkout of this repository. To run the tests:

```
pip install .[test]
pytest
```

## Formats and categories (`rainax.formats`)

```python
from rainax.formats import (
    all_format_options, quality_map_lookup, format_value_for_key,
    category_for_extension, make_categorized_output_dir,
)

key = quality_map_lookup("720p")          # "MP4 - 720p"
value = format_value_for_key(key)         # the yt-dlp -f selector for that key
category_for_extension(".mp3")            # "Music"
```

- `all_format_options()` returns the `FormatOption(label, value)` presets in
  display order.
- An unknown quality falls back to `"Best Quality (auto)"`.
  `format_value_for_key` returns `""` for an unknown label.
- An unknown extension lands in `"Other"`.
- `make_categorized_output_dir(base_dir, filename, fmt_key)` creates a category
  subfolder of `base_dir` and returns its path. The category comes from the
  filename's extension, or from the format label when `filename` is empty.

## Routing URLs (`rainax.urls`)

```python
from rainax.urls import should_use_ytdlp, is_direct_file_url, generic_file_label

should_use_ytdlp("https://www.youtube.com/watch?v=abc")   # True
is_direct_file_url("https://example.com/setup.exe")       # True
generic_file_label("https://example.com/report.pdf", "")  # "PDF Document"
```

A URL whose path ends in a known file extension is never routed to yt-dlp,
even when it is on a video platform.

## Status state machine (`rainax.status`)

```python
from rainax.status import DownloadStatus

status = DownloadStatus.from_label("Downloading")   # DownloadStatus.RUNNING
status.can_transition_to(DownloadStatus.PAUSED)     # True
DownloadStatus.COMPLETED.is_terminal()              # True
```

`label()` gives the display text. An unknown label parses as `QUEUED`.

## Items and the queue (`rainax.item`, `rainax.manager`)

`DownloadItem.create(url, output_dir, fmt_key)` builds a queued item. It gets
an 8-character id, the resolved output directory and the format selector.
Its display label is the format key for yt-dlp URLs and a file-type label
otherwise. `item.transition(target)` changes the status only when the state
machine allows it, and returns whether it did.

`DownloadManager(worker_factory, *, max_concurrent=3, persist=None,
filename_filter=None, on_event=None)` holds the queue:

- `worker_factory(item)` must return an object with `start()`,
  `request_pause()` and `request_cancel()`. The manager starts queued items
  while fewer than `max_concurrent` are starting, running or cancelling.
- Workers report back through `on_progress`, `on_status`, `on_filename` and
  `on_log`. A failure reported while an item is cancelling counts as a
  cancellation.
- `add`, `restore_item`, `start_item`, `pause_item`, `resume_item`,
  `cancel_item`, `cancel_all`, `clear_finished`, `url_in_queue`, `get_item`
  and `running_count` manage the queue.
- `persist(items)` is called whenever the queue should be saved.
- `on_event(name, payload)` receives `"item_added"`, `"item_updated"`,
  `"queue_changed"` and `"log"` events.
- `filename_filter` is applied to reported filenames.

## yt-dlp output (`rainax.ytdlp_output`)

`parse_output_line(line)` turns one line of yt-dlp output into one of:

- a `ProgressEvent(percent, size, speed, eta)`;
- a `FilenameEvent(filename)`, for a destination or merged file;
- `None`.

`build_command(ytdlp_cmd, url, fmt_key, fmt_value, output_dir, is_playlist,
ffmpeg_path)` returns the argument list and the category folder it writes
into. It creates that folder, adds `--no-playlist` unless `is_playlist` is
set, and passes `--ffmpeg-location` when `ffmpeg_path` exists.

`rainax.paths.AppPaths.from_directory(script_dir)` lists the application's
data files under a directory. It finds the yt-dlp command on `PATH`, falling
back to `python -m yt_dlp`.

## Local API (`rainax.api`)

```python
from rainax.api import ApiServer

def on_download(url, title, quality):
    print("requested", url, title, quality)

with ApiServer(
    "127.0.0.1", 9614, "token",
    is_safe_url=lambda url: url.startswith("https://"),
    on_download=on_download,
    status_source=None,
    max_body=64 * 1024,
) as server:
    ...
```

- `GET /ping` answers without a token.
- `GET /status` needs the `X-YDM-Token` header. It counts the running, queued
  and paused statuses yielded by `status_source()`.
- `POST /download` needs the `X-YDM-Token` header and a JSON body with `url`,
  `title` and `quality`. The URL must pass `is_safe_url`. An unknown quality
  becomes `"best"`. Control characters are stripped from the title, which is
  cut to 200 characters.
- Requests must come from a loopback address and carry a `Host` header of
  `127.0.0.1:<port>` or `localhost:<port>`.
- `POST` and `OPTIONS` requests must come from a browser-extension origin or
  from the API's own address. Cross-site and same-site fetches are refused.

`ApiRequestHandler` and `parse_request` let you answer a request without a
socket. `handler.handle(parse_request(raw))` returns the response bytes.

## Single instance (`rainax.instance`)

`signal_existing_instance(port, magic, timeout)` sends the magic bytes to a
running copy and reports whether one was listening. `InstanceServer(port,
magic, on_activate)` is the listening side. It calls `on_activate()` for each
connection that carries the magic bytes. `start()` returns `False` when the
port is already taken.

## What this package does not do

- It has no workers that actually run yt-dlp or fetch direct files. You
  supply them through `worker_factory`, and `build_command` only returns an
  argument list.
- It has no storage for the queue, history or schedule. Saving is left to
  the `persist` callback.
- It does not judge whether a URL is safe. That is left to the `is_safe_url`
  callback.
- It has no user interface and no command-line entry point.