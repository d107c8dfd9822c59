"""AWS clients."""

from courier.clients.aws.client import execute_aws_api_call, get_boto3_client
from courier.clients.aws.dynamodb import DynamoDBClient

__all__ = ["DynamoDBClient", "execute_aws_api_call", "get_boto3_client"]
