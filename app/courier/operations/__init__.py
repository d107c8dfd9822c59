"""Operation result types, status enums and error classifiers."""

from courier.operations.classifiers import (
    classify_aws_error,
    classify_http_error,
    classify_http_status,
)
from courier.operations.result import OperationResult
from courier.operations.status import OperationStatus

__all__ = [
    "OperationResult",
    "OperationStatus",
    "classify_http_error",
    "classify_http_status",
    "classify_aws_error",
]
