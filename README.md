# achdispatch

Building blocks for a service that collects ACH files per shard, keeps them on
disk until a scheduled cutoff time, reports which input files went out in which
uploaded file, cleans up old processed directories and encodes files for upload.

It uses only the standard library.

## Install

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Modules

### `achdispatch.output.formatters`

- `new_formatter(output_format)` picks a formatter by name:
  - `nacha` gives a `NachaFormatter`;
  - `base64` gives a `Base64Formatter`;
  - `encrypted-bytes` gives an `EncryptedFormatter`;
  - an empty or missing name gives Nacha;
  - a name ending in `-crlf` uses `\r\n` line endings;
  - any other name raises `ValueError("unknown output format")`.
- Each formatter's `format(result)` takes a `TransformResult` and returns bytes.
  - `TransformResult.file` is the file as a list of records.
  - `TransformResult.encrypted` holds encrypted bytes, if any.
- `NachaFormatter` checks that every record is 94 ASCII characters and raises
  `ValueError` if one is not.
- `Base64Formatter` encodes the encrypted bytes when there are any. Otherwise it
  encodes the Nacha text.

### `achdispatch.schedule.holidays`

- `holiday_for(day)` returns the `Holiday` that falls on, or is observed on,
  a date. A `Holiday` has a `name`, a `date` and an `observed` date.
- `is_weekend(day)` and `is_banking_day(day)` answer the calendar questions.
- The holidays covered are the Federal Reserve holidays.
- A holiday on a Sunday is observed on the Monday after it.

### `achdispatch.schedule.cutoff`

- `for_cutoff_times(tz, timestamps, clock=None)` builds a `CutoffTimes` and
  starts it. `timestamps` are `"HH:MM"` strings, and `tz` is an IANA zone name.
  An empty `tz` means UTC and `"Local"` means the machine's zone.
- At each cutoff on a weekday a `Day` is queued. Read it with
  `get(timeout=None)`:
  - `get` returns `None` once `stop()` has been called;
  - it raises `TimeoutError` when the timeout passes.
- A `Day` carries:
  - `time` and `holiday`;
  - `is_banking_day`, `is_holiday` and `is_weekend`;
  - `first_window`, which is true for the earliest cutoff of the day.
- `maybe_tick(tz)` queues a `Day` for the clock's current time in `tz`. It does
  nothing on weekends.
- Missing timestamps raise `ValueError`, and so do unparsable timestamps and
  unknown zones.

### `achdispatch.pipeline.merging`

`FilesystemMerging(root, shard_name)` keeps a shard's pending files under
`<root>/mergable/<shard>`. It has these methods:

- `write_file(file_id, contents, validate_opts=None)` stores `<id>.ach`. When
  `validate_opts` is given it also stores them as `<id>.json`.
- `handle_cancel(file_id, shard_key)` renames the pending file to
  `.ach.canceled` and returns a `CancellationResponse`. The response is
  successful when the file was pending or had already been canceled.
- `isolate_mergable_dir(now=None)` moves the pending directory to
  `<root>/<shard>-YYYYMMDD-HHMMSS` and returns that name.
- `canceled_files(directory)` and `non_canceled_matches(directory)` list the
  canceled and the still valid files of an isolated directory.
- `save_merged_file(directory, contents, validate_opts=None)` writes a merged
  file named by the SHA-256 of its contents.

### `achdispatch.pipeline.mapping`

- `file_acceptor(canceled_files)` returns a function giving
  `FileAcceptance.ACCEPT` or `FileAcceptance.SKIP` for a path.
- `hash_contents(data)` returns the hex SHA-256 of the data.
- `make_key(batch_header, entry)` builds the key used to match entries.
- `find_input_filepaths(mappings, merged)` fills each `MergedFile`'s
  `input_filepaths` from a `{key: input filename}` dict. It removes each key it
  uses from the dict.

### `achdispatch.pipeline.aggregate`

`Aggregator(shard_name, merger, emitter)` handles one shard:

- `accept_file(...)` passes the file to the merger.
- `cancel_file(file_id, shard_key)` cancels the file and emits the response.
- `emit_files_uploaded(merged)` emits one `FileUploaded` per input file. It
  raises `EmitError` listing every send that failed.
- `trigger(waiter)` runs `merger.with_each_merged()` and emits the uploads. It
  then resolves the `ManualCutoff` waiter.

The module also has these functions:

- `file_uploaded_events(merged, now=None)` builds the `FileUploaded` events.
- `prepare_shard_name(name)` turns spaces into dashes and upper-cases the name.
- `format_holiday_message(day, shard_name, hostname=None)` writes the text that
  announces a skipped holiday.

### `achdispatch.pipeline.manual_cutoff`

- `trigger_manual_cutoff(aggregators, shard_names)` triggers each aggregator
  and waits for it. It returns a `ShardResponses` that maps each shard to
  `None` or its error text.
  - A shard that was not requested is reported as `unknown shard <name>`.
- `handle_trigger_request(method, body, aggregators)` serves a request with a
  `{"shardNames": [...]}` JSON body and returns `(status, json_body)`:
  - 400 when the method is not `PUT`;
  - 400 when no shard is named;
  - 400 when any shard failed;
  - 200 otherwise.
- `exists(names, shard_name)` tells whether a name is in the list.

### `achdispatch.pipeline.cleanup`

- `new_cleanup_service(root, shard_name, config)` returns a `CleanupService`,
  or `None` when `CleanupConfig.enabled` is false.
- The service deletes `<shard>-YYYYMMDD-HHMMSS` directories that meet both of
  these conditions:
  - they are older than `retention_duration`;
  - their `uploaded/` directory holds files.
- `run_cleanup()` does one pass and returns `(deleted, errors)`.
- `start()` runs a pass at once and then one every `check_interval` in a
  background thread. `stop()` halts it.
- `get_stats()` returns a `CleanupStats`.
- `metrics` counts runs, deletions and errors.

### `achdispatch.pipeline.receiver`

- `FileReceiver(aggregators, default_shard_name, shard_lookup, accepted_files)`
  routes files to aggregators. `shard_lookup` is a mapping or a callable from
  shard key to shard name.
- `get_aggregator(shard_key)` finds the aggregator:
  - it uses the shard key itself as a shard name when the lookup finds nothing;
  - it falls back to the default shard when no aggregator has that name.
- `process_ach_file(file_id, shard_key, contents)` returns `True` when the file
  was handed on.
  - It returns `False` when the contents do not start with a file header
    record.
  - It returns `False` when the file was already accepted.
- `cancel_ach_file(file_id, shard_key)` cancels a file. It puts each response
  on `cancellation_responses` and also returns it.
- `is_network_error(err)` and `contains(err, *fragments)` test error texts.
- `AutoCommitSettings.should_autocommit()` is true only when Kafka is
  configured and `auto_commit` is set.

## Example

```python
from achdispatch.output.formatters import TransformResult, new_formatter

formatter = new_formatter("base64")
print(formatter.format(TransformResult(encrypted=b"hello, world")))
# b'aGVsbG8sIHdvcmxk'
```

```python
import datetime as dt
from achdispatch.schedule.holidays import holiday_for, is_banking_day

print(holiday_for(dt.date(2022, 12, 26)).name)  # Christmas Day (observed)
print(is_banking_day(dt.date(2022, 12, 26)))    # False
```

## What it does not do

- There is no command-line program, no HTTP server and no running service.
  `handle_trigger_request` only maps a request to a status and body.
- It sends no notifications: no Slack, PagerDuty or e-mail senders are
  included.
- It does not parse ACH records or merge ACH files. It also does not upload
  anything.
- `FilesystemMerging` has no `with_each_merged`. An `Aggregator` needs a merger
  that supplies one.
- Accepted files are remembered in memory only unless you pass your own
  `accepted_files` store.
- It does not read message queues or streams.