"""Focused unit tests for DynamoDB store logic that do not require a live endpoint."""

from __future__ import annotations

from typing import Any

import pytest
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import ClientError

from dynashard.config import DynashardConfig
from dynashard.errors import ConditionalCheckFailed, StorageBackendError, TableNotFoundError
from dynashard.store import ItemUpdate, RangeKeyInfo, TableInfo
from dynashard import store_dynamodb
from dynashard.store_dynamodb import DynamoDBStore


def client_error(code: str, operation: str = "Op") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class StubPaginator:
    def __init__(self, client: StubClient, operation: str) -> None:
        self.client = client
        self.operation = operation

    def paginate(self, **kwargs: Any):
        self.client.calls.append((f"paginate_{self.operation}", kwargs))
        return iter(self.client.pages.get(self.operation, []))


class StubWaiter:
    def __init__(self, client: StubClient, name: str) -> None:
        self.client = client
        self.name = name

    def wait(self, **kwargs: Any) -> None:
        self.client.calls.append((f"wait_{self.name}", kwargs))


class StubClient:
    """Records every call; answers from queued responses (exceptions are raised)."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.responses: dict[str, list[Any]] = {}
        self.pages: dict[str, list[dict[str, Any]]] = {}
        self.closed = False

    def queue(self, operation: str, *responses: Any) -> None:
        self.responses.setdefault(operation, []).extend(responses)

    def _call(self, operation: str, kwargs: dict[str, Any]) -> Any:
        self.calls.append((operation, kwargs))
        queued = self.responses.get(operation)
        result = queued.pop(0) if queued else {}
        if isinstance(result, Exception):
            raise result
        return result

    def __getattr__(self, operation: str):
        if operation.startswith("_"):
            raise AttributeError(operation)
        return lambda **kwargs: self._call(operation, kwargs)

    def get_paginator(self, operation: str) -> StubPaginator:
        return StubPaginator(self, operation)

    def get_waiter(self, name: str) -> StubWaiter:
        return StubWaiter(self, name)

    def close(self) -> None:
        self.closed = True

    def calls_to(self, operation: str) -> list[dict[str, Any]]:
        return [kwargs for op, kwargs in self.calls if op == operation]


def make_store(client: StubClient, **tables: TableInfo) -> DynamoDBStore:
    store = object.__new__(DynamoDBStore)
    store._config = DynashardConfig()
    store.region = "us-east-1"
    store.endpoint_url = None
    store._client = client
    store._serializer = TypeSerializer()
    store._deserializer = TypeDeserializer()
    store._tables = dict(tables)
    return store


USERS = TableInfo(name="users")
EVENTS = TableInfo(name="events", range_key=RangeKeyInfo("ts", "number"))


class TestTables:
    def test_get_table_parses_and_caches_description(self) -> None:
        client = StubClient()
        client.queue(
            "describe_table",
            {
                "Table": {
                    "AttributeDefinitions": [
                        {"AttributeName": "id", "AttributeType": "S"},
                        {"AttributeName": "ts", "AttributeType": "N"},
                    ],
                    "KeySchema": [
                        {"AttributeName": "id", "KeyType": "HASH"},
                        {"AttributeName": "ts", "KeyType": "RANGE"},
                    ],
                }
            },
        )
        store = make_store(client)
        assert store.get_table("events") == TableInfo("events", "id", RangeKeyInfo("ts", "number"))
        store.get_table("events")
        assert len(client.calls_to("describe_table")) == 1

    def test_missing_table(self) -> None:
        client = StubClient()
        client.queue("describe_table", client_error("ResourceNotFoundException"))
        with pytest.raises(TableNotFoundError):
            make_store(client).get_table("nope")

    def test_other_describe_errors_propagate(self) -> None:
        client = StubClient()
        client.queue("describe_table", client_error("AccessDeniedException"))
        with pytest.raises(ClientError):
            make_store(client).get_table("users")

    def test_create_table_waits_and_caches(self) -> None:
        client = StubClient()
        store = make_store(client)
        info = store.create_table(
            "events", range_key=RangeKeyInfo("ts", "number"), read_capacity=5, write_capacity=2
        )
        [call] = client.calls_to("create_table")
        assert call["KeySchema"] == [
            {"AttributeName": "id", "KeyType": "HASH"},
            {"AttributeName": "ts", "KeyType": "RANGE"},
        ]
        assert {"AttributeName": "ts", "AttributeType": "N"} in call["AttributeDefinitions"]
        assert call["ProvisionedThroughput"] == {"ReadCapacityUnits": 5, "WriteCapacityUnits": 2}
        assert client.calls_to("wait_table_exists") == [{"TableName": "events"}]
        assert store.get_table("events") is info

    def test_list_tables_paginates(self) -> None:
        client = StubClient()
        client.pages["list_tables"] = [{"TableNames": ["a", "b"]}, {"TableNames": ["c"]}]
        assert make_store(client).list_tables() == ["a", "b", "c"]

    def test_delete_table_drops_cache(self) -> None:
        client = StubClient()
        store = make_store(client, users=USERS)
        store.delete_table("users")
        assert client.calls_to("wait_table_not_exists") == [{"TableName": "users"}]
        assert "users" not in store._tables


class TestItems:
    def test_get_item_key_and_decoding(self) -> None:
        client = StubClient()
        client.queue(
            "get_item",
            {"Item": {"id": {"S": "e1"}, "ts": {"N": "5"}, "score": {"N": "1.5"}}},
        )
        item = make_store(client, events=EVENTS).get_item("events", "e1", range_key=5.0)
        assert item == {"id": "e1", "ts": 5, "score": 1.5}
        [call] = client.calls_to("get_item")
        assert call["Key"] == {"id": {"S": "e1"}, "ts": {"N": "5"}}

    def test_get_item_missing(self) -> None:
        assert make_store(StubClient(), users=USERS).get_item("users", "u1") is None

    def test_put_item_serializes_floats_and_skips_empty_sets(self) -> None:
        client = StubClient()
        make_store(client, users=USERS).put_item(
            "users", {"id": "u1", "score": 0.5, "tags": set(), "ids": {"a"}}
        )
        [call] = client.calls_to("put_item")
        assert call["Item"] == {"id": {"S": "u1"}, "score": {"N": "0.5"}, "ids": {"SS": ["a"]}}
        assert "ConditionExpression" not in call

    def test_conditional_put_failure(self) -> None:
        client = StubClient()
        client.queue("put_item", client_error("ConditionalCheckFailedException"))
        store = make_store(client, users=USERS)
        with pytest.raises(ConditionalCheckFailed) as exc:
            store.put_item("users", {"id": "u1", "lock": 1}, unless_exists="lock")
        assert isinstance(exc.value.__cause__, ClientError)
        [call] = client.calls_to("put_item")
        assert call["ConditionExpression"] == "attribute_not_exists(#cond)"
        assert call["ExpressionAttributeNames"] == {"#cond": "lock"}

    def test_conditional_delete_failure(self) -> None:
        client = StubClient()
        client.queue("delete_item", client_error("ConditionalCheckFailedException"))
        store = make_store(client, users=USERS)
        with pytest.raises(ConditionalCheckFailed):
            store.delete_item("users", "a@x", unless_exists="ids")

    def test_other_errors_propagate(self) -> None:
        client = StubClient()
        client.queue("delete_item", client_error("ProvisionedThroughputExceededException"))
        with pytest.raises(ClientError):
            make_store(client, users=USERS).delete_item("users", "u1")

    def test_range_key_required(self) -> None:
        with pytest.raises(ValueError, match="requires a value"):
            make_store(StubClient(), events=EVENTS).get_item("events", "e1")


class TestBatches:
    @pytest.fixture(autouse=True)
    def sleeps(self, monkeypatch: pytest.MonkeyPatch) -> list[float]:
        recorded: list[float] = []
        monkeypatch.setattr(store_dynamodb.time, "sleep", recorded.append)
        return recorded

    def test_batch_get_chunks_and_retries_unprocessed(self, sleeps: list[float]) -> None:
        client = StubClient()
        unprocessed = {"users": {"Keys": [{"id": {"S": "u0"}}], "ConsistentRead": False}}
        client.queue(
            "batch_get_item",
            {"Responses": {"users": [{"id": {"S": "u1"}}]}, "UnprocessedKeys": unprocessed},
            {"Responses": {"users": [{"id": {"S": "u0"}}]}},
            {"Responses": {"users": [{"id": {"S": "u150"}}]}},
        )
        store = make_store(client, users=USERS)
        result = store.batch_get_item({"users": [f"u{n}" for n in range(150)]})
        calls = client.calls_to("batch_get_item")
        assert len(calls) == 3
        assert len(calls[0]["RequestItems"]["users"]["Keys"]) == 100
        assert calls[1]["RequestItems"] == unprocessed
        assert len(calls[2]["RequestItems"]["users"]["Keys"]) == 50
        assert [r["id"] for r in result["users"]] == ["u1", "u0", "u150"]
        assert sleeps == [0.1]

    def test_batch_delete_chunks_by_25(self) -> None:
        client = StubClient()
        store = make_store(client, events=EVENTS)
        store.batch_delete_item({"events": [("e1", n) for n in range(30)]})
        calls = client.calls_to("batch_write_item")
        assert [len(c["RequestItems"]["events"]) for c in calls] == [25, 5]
        first = calls[0]["RequestItems"]["events"][0]
        assert first == {"DeleteRequest": {"Key": {"id": {"S": "e1"}, "ts": {"N": "0"}}}}

    def test_batch_delete_retries_unprocessed(self, sleeps: list[float]) -> None:
        client = StubClient()
        leftover = {"users": [{"DeleteRequest": {"Key": {"id": {"S": "u1"}}}}]}
        client.queue("batch_write_item", {"UnprocessedItems": leftover}, {})
        make_store(client, users=USERS).batch_delete_item({"users": ["u1", "u2"]})
        calls = client.calls_to("batch_write_item")
        assert len(calls) == 2
        assert calls[1]["RequestItems"] == leftover
        assert sleeps == [0.1]

    def test_batch_delete_backs_off_then_gives_up(self, sleeps: list[float]) -> None:
        client = StubClient()
        leftover = {"users": [{"DeleteRequest": {"Key": {"id": {"S": "u1"}}}}]}
        client.queue("batch_write_item", *[{"UnprocessedItems": leftover}] * 50)
        store = make_store(client, users=USERS)
        with pytest.raises(StorageBackendError) as exc:
            store.batch_delete_item({"users": ["u1"]})
        assert exc.value.operation == "batch_write_item"
        assert len(client.calls_to("batch_write_item")) == store._config.max_attempts
        assert sleeps == pytest.approx([0.1, 0.2, 0.4, 0.8])

    def test_batch_get_gives_up_after_max_attempts(self, sleeps: list[float]) -> None:
        client = StubClient()
        unprocessed = {"users": {"Keys": [{"id": {"S": "u1"}}], "ConsistentRead": False}}
        client.queue("batch_get_item", *[{"UnprocessedKeys": unprocessed}] * 10)
        store = make_store(client, users=USERS)
        store._config = DynashardConfig(max_attempts=3)
        with pytest.raises(StorageBackendError):
            store.batch_get_item({"users": ["u1"]})
        assert len(client.calls_to("batch_get_item")) == 3
        assert sleeps == pytest.approx([0.1, 0.2])


class TestUpdateItem:
    def test_builds_add_and_delete_expression(self) -> None:
        client = StubClient()
        client.queue("update_item", {"Attributes": {"id": {"S": "k"}, "ids": {"SS": ["u2"]}}})
        store = make_store(client, users=USERS)
        row = store.update_item("users", "k", ItemUpdate().add(ids=["u2"]).delete(ids=["u1"]))
        assert row == {"id": "k", "ids": {"u2"}}
        [call] = client.calls_to("update_item")
        assert call["UpdateExpression"] == "ADD #a0 :a0 DELETE #d0 :d0"
        assert call["ExpressionAttributeNames"] == {"#a0": "ids", "#d0": "ids"}
        assert call["ExpressionAttributeValues"] == {
            ":a0": {"SS": ["u2"]},
            ":d0": {"SS": ["u1"]},
        }
        assert call["ReturnValues"] == "ALL_NEW"

    def test_empty_update_reads_row(self) -> None:
        client = StubClient()
        client.queue("get_item", {"Item": {"id": {"S": "k"}}})
        assert make_store(client, users=USERS).update_item("users", "k", ItemUpdate()) == {
            "id": "k"
        }
        assert client.calls_to("update_item") == []


class TestScanAndQuery:
    def test_scan_filter_and_limit(self) -> None:
        client = StubClient()
        client.pages["scan"] = [
            {"Items": [{"id": {"S": "u1"}}, {"id": {"S": "u2"}}]},
            {"Items": [{"id": {"S": "u3"}}]},
        ]
        rows = make_store(client).scan("users", {"city": "Oslo"}, limit=2)
        assert [r["id"] for r in rows] == ["u1", "u2"]
        [call] = client.calls_to("paginate_scan")
        assert call["FilterExpression"] == "#f0 = :f0"
        assert call["ExpressionAttributeValues"] == {":f0": {"S": "Oslo"}}

    def test_query_key_conditions(self) -> None:
        client = StubClient()
        client.pages["query"] = [{"Items": [{"id": {"S": "e1"}, "ts": {"N": "3"}}]}]
        store = make_store(client, events=EVENTS)
        assert store.query("events", "e1", range_gte=2) == [{"id": "e1", "ts": 3}]
        store.query("events", "e1", range_value=(1, 4), scan_index_forward=False)
        first, second = client.calls_to("paginate_query")
        assert first["KeyConditionExpression"] == "#h = :h AND #r >= :r"
        assert first["ExpressionAttributeValues"] == {":h": {"S": "e1"}, ":r": {"N": "2"}}
        assert second["KeyConditionExpression"] == "#h = :h AND #r BETWEEN :lo AND :hi"
        assert second["ScanIndexForward"] is False


def test_constructor_accepts_injected_client() -> None:
    client = StubClient()
    store = DynamoDBStore(config=DynashardConfig(region="eu-west-1"), client=client)
    assert store.storage_info()["region"] == "eu-west-1"
    store.close()
    assert client.closed
