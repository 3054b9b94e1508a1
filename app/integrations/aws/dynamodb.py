"""DynamoDB operations returning OperationResult.

Thin wrappers over ``execute_aws_api_call`` used by the delivery store and
the audit log.

Usage:
    result = get_item(
        table_name="delivery-attempt-records",
        Key={"record_id": {"S": "abc"}},
    )
    if result.is_success:
        item = result.data.get("Item")
"""

from typing import Any, Dict

from integrations.aws.client import execute_aws_api_call
from infrastructure.operations.result import OperationResult


def get_item(table_name: str, Key: Dict[str, Any], **kwargs) -> OperationResult:
    """Get an item from a DynamoDB table.

    Returns:
        OperationResult: raw response (``Item`` absent when not found)
    """
    return execute_aws_api_call(
        service_name="dynamodb",
        method="get_item",
        TableName=table_name,
        Key=Key,
        **kwargs,
    )


def put_item(table_name: str, Item: Dict[str, Any], **kwargs) -> OperationResult:
    """Put an item into a DynamoDB table."""
    return execute_aws_api_call(
        service_name="dynamodb",
        method="put_item",
        TableName=table_name,
        Item=Item,
        **kwargs,
    )


def update_item(table_name: str, Key: Dict[str, Any], **kwargs) -> OperationResult:
    """Update an item, usually with a ConditionExpression.

    A failed condition comes back as an error result whose ``error_code`` is
    ``ConditionalCheckFailedException``.
    """
    return execute_aws_api_call(
        service_name="dynamodb",
        method="update_item",
        TableName=table_name,
        Key=Key,
        **kwargs,
    )


def query(table_name: str, KeyConditionExpression: str, **kwargs) -> OperationResult:
    """Query a table or index, following pagination.

    Returns:
        OperationResult: list of items in DynamoDB attribute-value format
    """
    return execute_aws_api_call(
        service_name="dynamodb",
        method="query",
        TableName=table_name,
        KeyConditionExpression=KeyConditionExpression,
        keys=["Items"],
        force_paginate=True,
        **kwargs,
    )


def query_page(table_name: str, KeyConditionExpression: str, **kwargs) -> OperationResult:
    """Query a single page, honouring ``Limit``."""
    return execute_aws_api_call(
        service_name="dynamodb",
        method="query",
        TableName=table_name,
        KeyConditionExpression=KeyConditionExpression,
        **kwargs,
    )
