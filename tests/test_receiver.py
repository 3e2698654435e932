import uuid

import pytest

from achdispatch.pipeline.aggregate import Aggregator
from achdispatch.pipeline.merging import FilesystemMerging
from achdispatch.pipeline.receiver import (
    AutoCommitSettings,
    FileReceiver,
    contains,
    is_network_error,
)

CONTENTS = ("101" + " " * 91 + "\n").encode("ascii")


class RecordingEmitter:
    def __init__(self):
        self.sent = []

    def send(self, event):
        self.sent.append(event)


def _aggregator(root, name):
    return Aggregator(name, FilesystemMerging(root, name), RecordingEmitter())


@pytest.fixture
def receiver(tmp_path):
    aggregators = {
        "testing": _aggregator(tmp_path, "testing"),
        "SD-live-odfi": _aggregator(tmp_path, "SD-live-odfi"),
    }
    mappings = {"testing": "testing"}
    fr = FileReceiver(aggregators, "testing", mappings)
    fr.mappings = mappings
    return fr


def test_contains():
    err = RuntimeError(
        "pubsub (code=Unknown): write tcp 10.0.0.1:45360->10.0.0.2:2222: write: broken pipe"
    )
    assert contains(err, "write: ")
    assert contains(err, "pubsub")
    assert not contains(err, "connect: ")
    assert not contains(err, "EOF")


def test_is_network_error():
    assert is_network_error(RuntimeError("unexpected EOF"))
    assert is_network_error("dial tcp: connect: connection refused")
    assert not is_network_error(ValueError("bad data"))


def test_should_autocommit():
    assert AutoCommitSettings().should_autocommit() is False
    assert AutoCommitSettings(kafka=True, auto_commit=False).should_autocommit() is False
    assert AutoCommitSettings(kafka=True, auto_commit=True).should_autocommit() is True
    assert AutoCommitSettings(kafka=False, auto_commit=True).should_autocommit() is False


def test_get_aggregator(receiver):
    agg = receiver.get_aggregator("testing")
    assert agg is not None
    assert agg.shard_name == "testing"

    shard_key = "SD-" + str(uuid.uuid4())
    receiver.mappings[shard_key] = "SD-live-odfi"

    found_key = receiver.get_aggregator(shard_key)
    assert found_key.shard_name == "SD-live-odfi"

    found_name = receiver.get_aggregator("SD-live-odfi")
    assert found_name is found_key


def test_get_aggregator_falls_back_to_default(receiver):
    agg = receiver.get_aggregator("unknown-key")
    assert agg.shard_name == "testing"


def test_get_aggregator_without_default(tmp_path):
    fr = FileReceiver({"one": _aggregator(tmp_path, "one")}, "missing", {})
    assert fr.get_aggregator("other") is None
    assert fr.metrics["missing_shard_aggregator:other"] == 1


def test_get_aggregator_lookup_errors(tmp_path):
    aggregators = {"alpha": _aggregator(tmp_path, "alpha")}

    def not_found(key):
        raise KeyError(key)

    def broken(key):
        raise RuntimeError("database down")

    assert FileReceiver(aggregators, "", not_found).get_aggregator("alpha").shard_name == "alpha"
    assert FileReceiver(aggregators, "alpha", broken).get_aggregator("alpha") is None


def test_process_ach_file_missing_fields(receiver):
    with pytest.raises(ValueError, match="missing fileID or shardKey"):
        receiver.process_ach_file("", "testing", CONTENTS)
    with pytest.raises(ValueError, match="missing fileID or shardKey"):
        receiver.process_ach_file("file1", "", CONTENTS)


def test_process_ach_file_accepts_once(receiver, tmp_path):
    assert receiver.process_ach_file("file1", "testing", CONTENTS) is True
    stored = tmp_path / "mergable" / "testing" / "file1.ach"
    assert stored.read_bytes() == CONTENTS
    assert receiver.metrics["pending:testing"] == 1

    assert receiver.process_ach_file("file1", "testing", CONTENTS) is False
    assert receiver.metrics["pending:testing"] == 1


def test_process_ach_file_invalid_contents(receiver, tmp_path):
    assert receiver.process_ach_file("file2", "testing", b"") is False
    assert not (tmp_path / "mergable" / "testing" / "file2.ach").exists()


def test_process_ach_file_without_aggregator(tmp_path):
    fr = FileReceiver({"one": _aggregator(tmp_path, "one")}, "missing", {})
    with pytest.raises(LookupError, match="no aggregator for shard key other found"):
        fr.process_ach_file("file1", "other", CONTENTS)


def test_cancel_ach_file(receiver, tmp_path):
    assert receiver.process_ach_file("file3", "testing", CONTENTS) is True

    response = receiver.cancel_ach_file("file3", "testing")
    assert response.successful is True
    assert response.file_id == "file3"
    assert (tmp_path / "mergable" / "testing" / "file3.ach.canceled").is_file()
    assert not (tmp_path / "mergable" / "testing" / "file3.ach").exists()

    assert receiver.cancellation_responses.get_nowait() == response
    emitter = receiver.aggregators["testing"].emitter
    assert emitter.sent == [response]


def test_cancel_ach_file_missing_fields(receiver):
    with pytest.raises(ValueError, match="missing fileID or shardKey"):
        receiver.cancel_ach_file("file1", "")


def test_cancel_ach_file_unknown_file(receiver):
    response = receiver.cancel_ach_file("nothing", "testing")
    assert response.successful is False


def test_cancel_ach_file_without_aggregator(tmp_path):
    fr = FileReceiver({"one": _aggregator(tmp_path, "one")}, "missing", {})
    assert fr.cancel_ach_file("file1", "other") is None
    assert fr.cancellation_responses.empty()