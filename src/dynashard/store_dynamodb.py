"""DynamoDB store over the boto3 low-level client."""

from __future__ import annotations

import time
from decimal import Decimal
from typing import Any, Iterator

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError

from dynashard.config import DynashardConfig
from dynashard.errors import ConditionalCheckFailed, StorageBackendError, TableNotFoundError
from dynashard.store import (
    ItemUpdate,
    RangeKeyInfo,
    TableInfo,
    normalize_number,
    range_condition,
)

BATCH_GET_LIMIT = 100
BATCH_WRITE_LIMIT = 25
UNPROCESSED_BACKOFF_S = 0.1

_KEY_CONDITIONS = {
    "range_greater_than": ">",
    "range_less_than": "<",
    "range_gte": ">=",
    "range_lte": "<=",
}


def _error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


def _to_dynamo(value: Any) -> Any:
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, (set, frozenset)):
        return {_to_dynamo(v) for v in value}
    if isinstance(value, dict):
        return {k: _to_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_dynamo(v) for v in value]
    return value


def _from_dynamo(value: Any) -> Any:
    if isinstance(value, Decimal):
        return normalize_number(value)
    if isinstance(value, (set, frozenset)):
        return {_from_dynamo(v) for v in value}
    if isinstance(value, dict):
        return {k: _from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_dynamo(v) for v in value]
    return value


class DynamoDBStore:
    """Store implementation backed by Amazon DynamoDB (or a compatible endpoint).

    The handle owns its boto3 client and a cache of table key layouts; construct one at
    startup and share it.
    """

    def __init__(
        self,
        *,
        config: DynashardConfig | None = None,
        region: str | None = None,
        endpoint_url: str | None = None,
        client: Any | None = None,
    ) -> None:
        self._config = config or DynashardConfig()
        self.region = region or self._config.region
        self.endpoint_url = endpoint_url or self._config.endpoint_url
        if client is None:
            session = boto3.Session(region_name=self.region)
            client = session.client(
                "dynamodb",
                region_name=self.region,
                endpoint_url=self.endpoint_url,
                config=BotoConfig(
                    connect_timeout=self._config.request_timeout_s,
                    read_timeout=self._config.request_timeout_s,
                    retries={"max_attempts": self._config.max_attempts, "mode": "standard"},
                ),
            )
        self._client = client
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()
        self._tables: dict[str, TableInfo] = {}

    def close(self) -> None:
        self._client.close()

    def storage_info(self) -> dict[str, Any]:
        return {"backend": "dynamodb", "region": self.region, "endpoint_url": self.endpoint_url}

    # --- Serialization helpers ---

    def _serialize_item(self, item: dict[str, Any]) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for attr, value in item.items():
            if isinstance(value, (set, frozenset)) and not value:
                # DynamoDB rejects empty sets; an empty set is an absent attribute.
                continue
            out[attr] = self._serializer.serialize(_to_dynamo(value))
        return out

    def _deserialize_item(self, item: dict[str, Any] | None) -> dict[str, Any] | None:
        if not item:
            return None
        return {k: _from_dynamo(self._deserializer.deserialize(v)) for k, v in item.items()}

    def _range_attr(self, info: TableInfo, value: Any) -> dict[str, Any]:
        assert info.range_key is not None
        if info.range_key.type == "number":
            return {"N": str(normalize_number(value))}
        return {"S": str(value)}

    def _key(self, info: TableInfo, hash_value: Any, range_value: Any = None) -> dict[str, Any]:
        key: dict[str, Any] = {info.hash_key: {"S": str(hash_value)}}
        if info.range_key is not None:
            if range_value is None:
                raise ValueError(
                    f"Table '{info.name}' requires a value for range key '{info.range_key.name}'"
                )
            key[info.range_key.name] = self._range_attr(info, range_value)
        return key

    def _split_key(self, key: Any) -> tuple[Any, Any]:
        if isinstance(key, tuple):
            return key[0], key[1]
        return key, None

    def _conditional(self, unless_exists: str | None) -> dict[str, Any]:
        if unless_exists is None:
            return {}
        return {
            "ConditionExpression": "attribute_not_exists(#cond)",
            "ExpressionAttributeNames": {"#cond": unless_exists},
        }

    # --- Tables ---

    def get_table(self, table_name: str) -> TableInfo:
        cached = self._tables.get(table_name)
        if cached is not None:
            return cached
        try:
            desc = self._client.describe_table(TableName=table_name)["Table"]
        except ClientError as e:
            if _error_code(e) == "ResourceNotFoundException":
                raise TableNotFoundError(table_name) from e
            raise
        types = {a["AttributeName"]: a["AttributeType"] for a in desc["AttributeDefinitions"]}
        hash_key = next(k["AttributeName"] for k in desc["KeySchema"] if k["KeyType"] == "HASH")
        range_name = next(
            (k["AttributeName"] for k in desc["KeySchema"] if k["KeyType"] == "RANGE"), None
        )
        range_key = None
        if range_name is not None:
            range_type = "number" if types.get(range_name) == "N" else "string"
            range_key = RangeKeyInfo(range_name, range_type)
        info = TableInfo(name=table_name, hash_key=hash_key, range_key=range_key)
        self._tables[table_name] = info
        return info

    def list_tables(self) -> list[str]:
        names: list[str] = []
        for page in self._client.get_paginator("list_tables").paginate():
            names.extend(page.get("TableNames", []))
        return names

    def create_table(
        self,
        table_name: str,
        key: str = "id",
        *,
        range_key: RangeKeyInfo | None = None,
        read_capacity: int = 100,
        write_capacity: int = 20,
    ) -> TableInfo:
        attribute_definitions = [{"AttributeName": key, "AttributeType": "S"}]
        key_schema = [{"AttributeName": key, "KeyType": "HASH"}]
        if range_key is not None:
            attribute_definitions.append(
                {
                    "AttributeName": range_key.name,
                    "AttributeType": "N" if range_key.type == "number" else "S",
                }
            )
            key_schema.append({"AttributeName": range_key.name, "KeyType": "RANGE"})
        self._client.create_table(
            TableName=table_name,
            KeySchema=key_schema,
            AttributeDefinitions=attribute_definitions,
            ProvisionedThroughput={
                "ReadCapacityUnits": read_capacity,
                "WriteCapacityUnits": write_capacity,
            },
        )
        self._client.get_waiter("table_exists").wait(TableName=table_name)
        info = TableInfo(name=table_name, hash_key=key, range_key=range_key)
        self._tables[table_name] = info
        return info

    def delete_table(self, table_name: str) -> None:
        self._client.delete_table(TableName=table_name)
        self._client.get_waiter("table_not_exists").wait(TableName=table_name)
        self._tables.pop(table_name, None)

    # --- Items ---

    def get_item(
        self,
        table_name: str,
        key: Any,
        *,
        range_key: Any = None,
        consistent_read: bool = False,
    ) -> dict[str, Any] | None:
        info = self.get_table(table_name)
        resp = self._client.get_item(
            TableName=table_name,
            Key=self._key(info, key, range_key),
            ConsistentRead=consistent_read,
        )
        return self._deserialize_item(resp.get("Item"))

    def _send_batch(
        self, operation: str, request_items: dict[str, Any], unprocessed: str
    ) -> Iterator[dict[str, Any]]:
        """Send a batch request, re-sending whatever DynamoDB leaves unprocessed.

        Each re-send first waits ``2**n * UNPROCESSED_BACKOFF_S``. Keys left over after
        ``max_attempts`` sends raise ``StorageBackendError``.
        """
        send = getattr(self._client, operation)
        attempts = 0
        while request_items:
            if attempts >= self._config.max_attempts:
                raise StorageBackendError(
                    operation, f"keys still unprocessed after {attempts} attempts"
                )
            if attempts:
                time.sleep(2 ** (attempts - 1) * UNPROCESSED_BACKOFF_S)
            resp = send(RequestItems=request_items)
            attempts += 1
            yield resp
            request_items = resp.get(unprocessed) or {}

    def batch_get_item(
        self,
        requests: dict[str, list[Any]],
        *,
        consistent_read: bool = False,
    ) -> dict[str, list[dict[str, Any]]]:
        results: dict[str, list[dict[str, Any]]] = {table: [] for table in requests}
        pending: list[tuple[str, dict[str, Any]]] = []
        for table_name, keys in requests.items():
            info = self.get_table(table_name)
            pending.extend((table_name, self._key(info, *self._split_key(k))) for k in keys)

        for start in range(0, len(pending), BATCH_GET_LIMIT):
            request_items: dict[str, Any] = {}
            for table_name, key in pending[start : start + BATCH_GET_LIMIT]:
                entry = request_items.setdefault(
                    table_name, {"Keys": [], "ConsistentRead": consistent_read}
                )
                entry["Keys"].append(key)
            for resp in self._send_batch("batch_get_item", request_items, "UnprocessedKeys"):
                for table_name, items in resp.get("Responses", {}).items():
                    for raw in items:
                        item = self._deserialize_item(raw)
                        if item is not None:
                            results[table_name].append(item)
        return results

    def put_item(
        self,
        table_name: str,
        item: dict[str, Any],
        *,
        unless_exists: str | None = None,
    ) -> None:
        info = self.get_table(table_name)
        try:
            self._client.put_item(
                TableName=table_name,
                Item=self._serialize_item(item),
                **self._conditional(unless_exists),
            )
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                raise ConditionalCheckFailed(
                    table_name,
                    item.get(info.hash_key),
                    f"attribute_not_exists({unless_exists})",
                ) from e
            raise

    def delete_item(
        self,
        table_name: str,
        key: Any,
        *,
        range_key: Any = None,
        unless_exists: str | None = None,
    ) -> None:
        info = self.get_table(table_name)
        try:
            self._client.delete_item(
                TableName=table_name,
                Key=self._key(info, key, range_key),
                **self._conditional(unless_exists),
            )
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                raise ConditionalCheckFailed(
                    table_name, key, f"attribute_not_exists({unless_exists})"
                ) from e
            raise

    def batch_delete_item(self, requests: dict[str, list[Any]]) -> None:
        pending: list[tuple[str, dict[str, Any]]] = []
        for table_name, keys in requests.items():
            info = self.get_table(table_name)
            pending.extend((table_name, self._key(info, *self._split_key(k))) for k in keys)

        for start in range(0, len(pending), BATCH_WRITE_LIMIT):
            request_items: dict[str, list[dict[str, Any]]] = {}
            for table_name, key in pending[start : start + BATCH_WRITE_LIMIT]:
                request_items.setdefault(table_name, []).append({"DeleteRequest": {"Key": key}})
            for _ in self._send_batch("batch_write_item", request_items, "UnprocessedItems"):
                pass

    def update_item(
        self,
        table_name: str,
        key: Any,
        update: ItemUpdate,
        *,
        range_key: Any = None,
    ) -> dict[str, Any] | None:
        info = self.get_table(table_name)
        names: dict[str, str] = {}
        values: dict[str, Any] = {}
        clauses: list[str] = []
        actions = (("ADD", "a", update.added), ("DELETE", "d", update.deleted))
        for action, prefix, deltas in actions:
            parts = []
            for i, (attr, elements) in enumerate(sorted(deltas.items())):
                if not elements:
                    continue
                names[f"#{prefix}{i}"] = attr
                values[f":{prefix}{i}"] = self._serializer.serialize(_to_dynamo(set(elements)))
                parts.append(f"#{prefix}{i} :{prefix}{i}")
            if parts:
                clauses.append(f"{action} {', '.join(parts)}")
        if not clauses:
            return self.get_item(table_name, key, range_key=range_key)

        resp = self._client.update_item(
            TableName=table_name,
            Key=self._key(info, key, range_key),
            UpdateExpression=" ".join(clauses),
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
            ReturnValues="ALL_NEW",
        )
        return self._deserialize_item(resp.get("Attributes"))

    # --- Reads over many rows ---

    def _paginate_items(self, operation: str, limit: int | None, **kwargs: Any) -> Iterator[Any]:
        count = 0
        for page in self._client.get_paginator(operation).paginate(**kwargs):
            for raw in page.get("Items", []):
                yield self._deserialize_item(raw)
                count += 1
                if limit is not None and count >= limit:
                    return

    def scan(
        self,
        table_name: str,
        conditions: dict[str, Any] | None = None,
        *,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        kwargs: dict[str, Any] = {"TableName": table_name}
        if conditions:
            names: dict[str, str] = {}
            values: dict[str, Any] = {}
            parts = []
            for i, (attr, value) in enumerate(conditions.items()):
                names[f"#f{i}"] = attr
                values[f":f{i}"] = self._serializer.serialize(_to_dynamo(value))
                parts.append(f"#f{i} = :f{i}")
            kwargs["FilterExpression"] = " AND ".join(parts)
            kwargs["ExpressionAttributeNames"] = names
            kwargs["ExpressionAttributeValues"] = values
        return [item for item in self._paginate_items("scan", limit, **kwargs) if item]

    def query(
        self,
        table_name: str,
        hash_value: Any,
        *,
        limit: int | None = None,
        scan_index_forward: bool = True,
        **range_options: Any,
    ) -> list[dict[str, Any]]:
        condition = range_condition(range_options)
        info = self.get_table(table_name)
        names = {"#h": info.hash_key}
        values: dict[str, Any] = {":h": {"S": str(hash_value)}}
        expression = "#h = :h"
        if condition is not None and info.range_key is not None:
            name, bound = condition
            names["#r"] = info.range_key.name
            if name == "range_value":
                low, high = bound
                values[":lo"] = self._range_attr(info, low)
                values[":hi"] = self._range_attr(info, high)
                expression += " AND #r BETWEEN :lo AND :hi"
            else:
                values[":r"] = self._range_attr(info, bound)
                expression += f" AND #r {_KEY_CONDITIONS[name]} :r"
        items = self._paginate_items(
            "query",
            limit,
            TableName=table_name,
            KeyConditionExpression=expression,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
            ScanIndexForward=scan_index_forward,
        )
        return [item for item in items if item]
