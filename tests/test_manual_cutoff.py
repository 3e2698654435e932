import json
import threading

import pytest

from achdispatch.pipeline.manual_cutoff import (
    ManualCutoff,
    ShardResponses,
    exists,
    handle_trigger_request,
    trigger_manual_cutoff,
)


class FakeAggregator:
    def __init__(self, response=None):
        self.response = response
        self.triggered = 0

    def trigger(self, waiter):
        self.triggered += 1
        threading.Thread(target=waiter.resolve, args=(self.response,)).start()


def test_exists_filter():
    names = []
    assert exists(names, "testing") is False
    names.append("live-odfi")
    assert exists(names, "testing") is False
    names.append("testing")
    assert exists(names, "testing") is True
    assert exists(None, "testing") is False


def test_manual_cutoff_success():
    agg = FakeAggregator()
    status, body = handle_trigger_request(
        "PUT", '{"shardNames":["testing"]}', {"testing": agg}
    )
    assert status == 200
    assert json.loads(body) == {"shards": {"testing": None}}
    assert agg.triggered == 1


def test_manual_cutoff_error():
    agg = FakeAggregator(RuntimeError("bad thing"))
    status, body = handle_trigger_request(
        "PUT", b'{"shardNames":["testing"]}', {"testing": agg}
    )
    assert status == 400
    assert json.loads(body)["shards"] == {"testing": "bad thing"}


def test_rejects_other_methods():
    agg = FakeAggregator()
    assert handle_trigger_request("POST", '{"shardNames":["testing"]}', {"testing": agg}) == (
        400,
        "",
    )
    assert agg.triggered == 0


@pytest.mark.parametrize("body", ["", "{}", '{"shardNames":[]}', "not json", '{"shardNames":"x"}'])
def test_rejects_missing_shard_names(body):
    agg = FakeAggregator()
    assert handle_trigger_request("PUT", body, {"testing": agg}) == (400, "")
    assert agg.triggered == 0


def test_unrequested_shard_is_reported():
    testing, other = FakeAggregator(), FakeAggregator()
    responses = trigger_manual_cutoff({"testing": testing, "other": other}, ["testing"])
    assert responses.shards == {"testing": None, "other": "unknown shard other"}
    assert responses.has_errors() is True
    assert other.triggered == 0


def test_shard_responses():
    assert ShardResponses({"a": None}).has_errors() is False
    assert ShardResponses({"a": None, "b": "boom"}).has_errors() is True
    assert ShardResponses({"a": None}).to_json() == '{"shards": {"a": null}}\n'


def test_manual_cutoff_wait():
    waiter = ManualCutoff()
    with pytest.raises(TimeoutError):
        waiter.wait(timeout=0.01)
    err = ValueError("first")
    waiter.resolve(err)
    waiter.resolve(None)
    assert waiter.wait(timeout=1) is err