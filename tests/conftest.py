from __future__ import annotations

import re

import pytest
from botocore.exceptions import ClientError

from giveaway_fairness import GiveawayRecord, GiveawayStorage

_SET_CLAUSE = re.compile(r"^\s*(\S+)\s*=\s*(:\w+)\s*$")


def conditional_failure(operation: str) -> ClientError:
    return ClientError(
        {
            "Error": {
                "Code": "ConditionalCheckFailedException",
                "Message": "The conditional request failed",
            }
        },
        operation,
    )


def _matches(condition, item: dict[str, object]) -> bool:
    expression = condition.get_expression()
    operator = expression["operator"]
    values = expression["values"]
    if operator == "AND":
        return all(_matches(value, item) for value in values)
    attribute, expected = values
    actual = item.get(attribute.name)
    if operator == "=":
        return actual == expected
    if operator == "begins_with":
        return isinstance(actual, str) and actual.startswith(expected)
    raise NotImplementedError(operator)  # pragma: no cover - helper


class FakeTable:
    """In-memory stand-in for a boto3 DynamoDB ``Table`` with pk/sk keys."""

    def __init__(self) -> None:
        self.items: dict[tuple[str, str], dict[str, object]] = {}
        self.fail_with: ClientError | None = None

    @staticmethod
    def _key(key: dict[str, object]) -> tuple[str, str]:
        return str(key["pk"]), str(key["sk"])

    def _check_failure(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def _condition_holds(
        self,
        expression: str | None,
        item: dict[str, object] | None,
        names: dict[str, str],
        values: dict[str, object],
    ) -> bool:
        if not expression:
            return True
        for clause in expression.split(" AND "):
            clause = clause.strip()
            if clause.startswith("attribute_exists("):
                name = clause[len("attribute_exists(") : -1]
                if item is None or name not in item:
                    return False
            elif clause.startswith("attribute_not_exists("):
                name = clause[len("attribute_not_exists(") : -1]
                if item is not None and name in item:
                    return False
            else:
                name, placeholder = (part.strip() for part in clause.split("="))
                name = names.get(name, name)
                if item is None or item.get(name) != values[placeholder]:
                    return False
        return True

    def get_item(self, *, Key):
        self._check_failure()
        item = self.items.get(self._key(Key))
        return {"Item": dict(item)} if item is not None else {}

    def put_item(self, *, Item, ConditionExpression=None):
        self._check_failure()
        key = self._key(Item)
        if not self._condition_holds(ConditionExpression, self.items.get(key), {}, {}):
            raise conditional_failure("PutItem")
        self.items[key] = dict(Item)

    def update_item(
        self,
        *,
        Key,
        UpdateExpression,
        ExpressionAttributeValues,
        ConditionExpression=None,
        ExpressionAttributeNames=None,
        ReturnValues="NONE",
    ):
        self._check_failure()
        names = ExpressionAttributeNames or {}
        key = self._key(Key)
        existing = self.items.get(key)
        if not self._condition_holds(
            ConditionExpression, existing, names, ExpressionAttributeValues
        ):
            raise conditional_failure("UpdateItem")

        item = dict(existing) if existing is not None else dict(Key)
        action, _, body = UpdateExpression.partition(" ")
        if action == "SET":
            for clause in body.split(","):
                match = _SET_CLAUSE.match(clause)
                assert match, clause
                name, placeholder = match.groups()
                item[names.get(name, name)] = ExpressionAttributeValues[placeholder]
        elif action == "ADD":
            name, placeholder = body.split()
            name = names.get(name, name)
            item[name] = item.get(name, 0) + ExpressionAttributeValues[placeholder]
        else:  # pragma: no cover - helper
            raise NotImplementedError(UpdateExpression)
        self.items[key] = item

        if ReturnValues == "ALL_NEW":
            return {"Attributes": dict(item)}
        return {}

    def query(self, *, KeyConditionExpression, Select="ALL_ATTRIBUTES", **_kwargs):
        self._check_failure()
        items = [
            dict(self.items[key])
            for key in sorted(self.items)
            if _matches(KeyConditionExpression, self.items[key])
        ]
        return {"Items": items, "Count": len(items)}

    def scan(self, *, FilterExpression=None, **_kwargs):
        self._check_failure()
        items = [
            dict(item)
            for item in self.items.values()
            if FilterExpression is None or _matches(FilterExpression, item)
        ]
        return {"Items": items, "Count": len(items)}


@pytest.fixture
def table() -> FakeTable:
    return FakeTable()


@pytest.fixture
def storage(table: FakeTable) -> GiveawayStorage:
    return GiveawayStorage(table)


def make_giveaway(
    giveaway_id: str = "g1",
    *,
    end_date: str = "2099-01-01T00:00:00.000Z",
    **overrides,
) -> GiveawayRecord:
    return GiveawayRecord(
        giveaway_id=giveaway_id,
        title=f"Giveaway {giveaway_id}",
        end_date=end_date,
        **overrides,
    )
