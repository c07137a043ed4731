# chatlog

A library of helpers for working with exported chat archives.

## What is in it

- **Time parsing** (`chatlog.timeutil`)
  - `time_of(text)` returns an aware `datetime` for timestamps in seconds
    (`1577836800`), dates (`20200101`, `2020-01-01`), dates with a time
    (`20200101/12:34`, `2020-01-01/12:34`), `200601021504`,
    `20060102150405`, months (`202001`, `2020-01`), quarters (`2020Q1`),
    years (`2020`), RFC 3339 strings and relative forms (`now`, `today`,
    `yesterday`, `this-week`, `last-month`, `3d-ago`, `5h-ago`, `1h30m-ago`).
  - `parse_time_with_granularity(text)` returns the same moment together with
    a `TimeGranularity` telling how precise the expression was.
  - `time_range_of(text)` returns an inclusive `(start, end)` pair for a
    single expression (widened to its day, month, quarter or year), for
    `last-7d`, `last-4w`, `last-3m`, `last-1y`, for `all`, and for two
    expressions joined by `~`, `,` or ` to ` (swapped if given backwards).
  - `perfect_time_format(start, end)` picks a `strftime` format just detailed
    enough for a span.
  - Unrecognised expressions raise `ValueError`.
- **String helpers** (`chatlog.strutil`): `str_to_list` (split, trim, drop
  blanks and duplicates), `is_numeric`, `is_normal_string`,
  `must_any_to_int`, `split_int64_to_two_int32`.
- **File-system helpers** (`chatlog.fsutil`): `find_files_with_patterns`
  (regular-expression file search, optionally recursive), `get_dir_size`,
  `byte_count_si`, `default_work_dir`, `prepare_dir`.
- **Image decoding** (`chatlog.dat2img`): `dat_to_image` recovers JPG, PNG,
  GIF, TIFF and BMP data from XOR-obfuscated `.dat` files and from the newer
  layout with an AES-ECB head and an XOR tail. `DatDecoder` holds its own XOR
  key for that layout and `DatDecoder.scan_xor_key(dir_path)` derives it from
  a `_t.dat` thumbnail found under a directory. `calculate_xor_key_v4`
  derives a key from a JPEG tail.
- **Decompression** (`chatlog.compression`): `lz4_decompress` for raw LZ4
  blocks (output up to four times the input) and `zstd_decompress` for one
  or more Zstandard frames. Bad input raises `ValueError`.
- **Temporary copies** (`chatlog.filecopy`): `get_temp_copy(path)` returns a
  snapshot of a file that another process may be writing, reusing the copy
  until the original's size or modification time changes. Stale copies are
  removed after a delay. `TempCopyManager` does the same with a directory
  and delay of your choice and can be used as a context manager.
- **File monitoring** (`chatlog.filegroup`, `chatlog.filemonitor`): a
  `FileGroup` gathers files under a root directory whose names match a
  regular expression, minus blacklisted path fragments, and runs callbacks
  with a `FileEvent` when they change. `FileMonitor` watches the groups'
  directories and forwards events to them.
- **Configuration** (`chatlog.config`, `chatlog.defaults`): `Config` keeps
  settings in a JSON file in its own directory (by default `~/.<name>`) and
  loads them into a dataclass; `set_default` fills zero-valued dataclass
  fields from defaults declared in field metadata under `"default"`.

## Installation

```
pip install .
```

## Examples

```python
from chatlog.timeutil import time_of, time_range_of

start, end = time_range_of("2020Q1")
# start: 2020-01-01 00:00:00, end: 2020-03-31 23:59:59.999999 (local time)

moment = time_of("2020-01-01/12:34")
```

```python
from chatlog.dat2img import dat_to_image

with open("picture.dat", "rb") as fh:
    image, ext = dat_to_image(fh.read())
with open(f"picture.{ext}", "wb") as fh:
    fh.write(image)
```

```python
from chatlog.filemonitor import FileMonitor

monitor = FileMonitor()
group = monitor.create_group("db", "/data/archive", r".*\.db$", [])
group.add_callback(lambda event: print(event.name, event.op))
monitor.start()
# ...
monitor.stop()
```

```python
from dataclasses import dataclass, field
from chatlog.config import Config

@dataclass
class Settings:
    work_dir: str = field(default="", metadata={"default": "/tmp/chatlog"})
    port: int = field(default=0, metadata={"default": "5030"})

config = Config("myapp")
settings = config.load(Settings)   # creates ~/.myapp/myapp.json if missing
config.set("port", 8080)
```

## What it does not do

This is a library only. It has no command-line program, no web server and no
interactive screen, it does not locate or read chat databases, and it does
not convert voice messages. Configuration files are JSON only.

## Running the tests

```
pip install .[test]
pytest
```