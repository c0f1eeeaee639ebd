"""CloudWatch sink - validates and pushes flush batches with boto3."""

import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import TransportError, ValidationError
from .window import FlushBatch

DEFAULT_NAMESPACE = "nvidia-cloudwatch"

logger = logging.getLogger("nvidia_cloudwatch.cloudwatch.sink")


def create_cloudwatch_client(region: str):
    """Create a CloudWatch client for the given region (default us-east-1)"""
    return boto3.session.Session(region_name=region or "us-east-1").client("cloudwatch")


class CloudWatchSink:
    """Pushes flush batches to CloudWatch, one PutMetricData call per request"""

    def __init__(self, client, namespace: str = DEFAULT_NAMESPACE):
        self.client = client
        self.namespace = namespace

    def send(self, batch: FlushBatch) -> int:
        """
        Validate every record of the batch, then transmit it.

        Returns:
            Number of metric data sent

        Raises:
            ValidationError: If any record is inconsistent or its storage resolution
                differs from the batch; nothing is sent
            TransportError: If CloudWatch rejects or fails a request
        """
        for record in batch.records():
            record.validate()
            if record.storage_resolution != batch.resolution:
                raise ValidationError(
                    f"record resolution {record.storage_resolution}s in a {batch.resolution}s batch")

        sent = 0
        for request in batch.requests:
            if not request:
                continue
            metric_data = [r.to_metric_datum() for r in request]
            try:
                self.client.put_metric_data(Namespace=self.namespace, MetricData=metric_data)
            except (BotoCoreError, ClientError) as e:
                raise TransportError(f"PutMetricData failed: {e}") from e
            sent += len(metric_data)

        logger.debug(f"sent {sent} metric data at {batch.resolution}s resolution "
                     f"in {len(batch.requests)} requests to {self.namespace}")
        return sent
