from __future__ import annotations

from typing import Any

from core.settings import Settings


def build_sqs_client(settings: Settings) -> Any:
    try:
        import boto3
    except ModuleNotFoundError as err:
        raise RuntimeError("boto3 is required for the SQS event publisher") from err

    return boto3.client(
        "sqs",
        region_name=settings.aws_region,
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key,
        endpoint_url=settings.sqs_endpoint_url,
    )
