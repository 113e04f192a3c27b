from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from finledger.core.errors import TransportError
from finledger.db.remote import Collection


class DynamoCollectionClient:
    """
    Remote collection service backed by one DynamoDB table per collection.
    Items are keyed by "_id" (partition key, string).
    """

    def __init__(self, region: str, table_prefix: str = "", resource=None) -> None:
        self._region = region
        self._table_prefix = table_prefix
        dynamodb = resource or boto3.resource("dynamodb", region_name=region)
        self._tables = {kind: dynamodb.Table(f"{table_prefix}{kind.value}") for kind in Collection}

    def list_records(self, kind: Collection) -> List[Dict[str, Any]]:
        """Scan the whole table, following pagination."""
        table = self._tables[kind]
        items: List[Dict[str, Any]] = []
        try:
            response = table.scan()
            items.extend(response.get("Items", []))
            while "LastEvaluatedKey" in response:
                response = table.scan(ExclusiveStartKey=response["LastEvaluatedKey"])
                items.extend(response.get("Items", []))
        except (ClientError, BotoCoreError) as e:
            raise TransportError(f"scan {kind.value} failed: {_error_message(e)}") from e
        return [_from_dynamo(item) for item in items]

    def create_record(self, kind: Collection, payload: Dict[str, Any]) -> Dict[str, Any]:
        item = {**payload, "_id": uuid4().hex}
        try:
            self._tables[kind].put_item(Item=_convert_for_dynamo(item))
        except (ClientError, BotoCoreError) as e:
            raise TransportError(f"put {kind.value} failed: {_error_message(e)}") from e
        return item

    def update_record(self, kind: Collection, record_id: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Apply partial updates to a record. Returns the updated item or None.
        """
        updates = {k: v for k, v in payload.items() if k != "_id"}
        if not updates:
            return None

        update_expression_parts = []
        expression_attribute_values = {}
        expression_attribute_names = {}

        for idx, (key, value) in enumerate(updates.items()):
            placeholder = f"#f{idx}"
            value_placeholder = f":v{idx}"
            update_expression_parts.append(f"{placeholder} = {value_placeholder}")
            expression_attribute_names[placeholder] = key
            expression_attribute_values[value_placeholder] = value

        update_expression = "SET " + ", ".join(update_expression_parts)

        try:
            response = self._tables[kind].update_item(
                Key={"_id": record_id},
                UpdateExpression=update_expression,
                ExpressionAttributeNames=expression_attribute_names,
                ExpressionAttributeValues=_convert_for_dynamo(expression_attribute_values),
                ReturnValues="ALL_NEW",
            )
        except (ClientError, BotoCoreError) as e:
            raise TransportError(f"update {kind.value}/{record_id} failed: {_error_message(e)}") from e
        attributes = response.get("Attributes")
        return _from_dynamo(attributes) if attributes else None

    def delete_record(self, kind: Collection, record_id: str) -> None:
        try:
            self._tables[kind].delete_item(Key={"_id": record_id})
        except (ClientError, BotoCoreError) as e:
            raise TransportError(f"delete {kind.value}/{record_id} failed: {_error_message(e)}") from e

    def append_sub_record(
        self,
        kind: Collection,
        record_id: str,
        field: str,
        payload: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        try:
            response = self._tables[kind].update_item(
                Key={"_id": record_id},
                UpdateExpression="SET #f = list_append(if_not_exists(#f, :empty), :entry)",
                ExpressionAttributeNames={"#f": field},
                ExpressionAttributeValues=_convert_for_dynamo({":empty": [], ":entry": [payload]}),
                ReturnValues="ALL_NEW",
            )
        except (ClientError, BotoCoreError) as e:
            raise TransportError(f"append {kind.value}/{record_id}.{field} failed: {_error_message(e)}") from e
        attributes = response.get("Attributes")
        return _from_dynamo(attributes) if attributes else None

    def leaderboard(self) -> List[Dict[str, Any]]:
        raise TransportError("leaderboard is not stored in DynamoDB")

    def describe(self) -> Dict[str, Any]:
        return {"backend": "dynamo", "region": self._region, "table_prefix": self._table_prefix}


def _error_message(error: Exception) -> str:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Message", str(error))
    return str(error)


def _convert_for_dynamo(obj: Any):
    """
    Recursively convert floats to Decimal for DynamoDB compatibility.
    """
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, dict):
        return {k: _convert_for_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_convert_for_dynamo(v) for v in obj]
    return obj


def _from_dynamo(obj: Any):
    """
    Recursively convert Decimal instances back to native Python numeric types.
    """
    if isinstance(obj, list):
        return [_from_dynamo(item) for item in obj]
    if isinstance(obj, dict):
        return {k: _from_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, Decimal):
        if obj % 1 == 0:
            return int(obj)
        return float(obj)
    return obj
