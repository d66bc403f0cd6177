"""
Module: metrics.py
Description: CloudWatch custom metrics publishing.

Publishes delivery outcome counters to CloudWatch so that repeated
failures can be alerted on outside this service.

Key Components:
- MetricsClient: CloudWatch metrics client
- put_metric(): Publish individual metrics
- increment(): Count helper with the stage dimension applied
- Graceful error handling for metrics failures

Dependencies: boto3, typing, logger
"""

import boto3
from typing import Dict, Optional

from formhooks.utils.logger import get_logger

logger = get_logger(__name__)


class MetricsClient:
    """CloudWatch metrics client."""

    def __init__(
        self,
        namespace: str = "FormWebhooks",
        stage: Optional[str] = None,
        region_name: Optional[str] = None
    ):
        """
        Initialize metrics client.

        Args:
            namespace: CloudWatch metrics namespace
            stage: Deployment stage added as a dimension to every counter
            region_name: AWS region for the CloudWatch client
        """
        self.namespace = namespace
        self.stage = stage
        self.cloudwatch = boto3.client('cloudwatch', region_name=region_name)

        logger.info(
            "Metrics client initialized",
            namespace=namespace,
            stage=stage
        )

    def put_metric(
        self,
        metric_name: str,
        value: float,
        unit: str = 'Count',
        dimensions: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Publish a metric to CloudWatch.

        Args:
            metric_name: Name of the metric
            value: Metric value
            unit: Metric unit (Count, Milliseconds, etc.)
            dimensions: Optional metric dimensions
        """
        try:
            metric_data = {
                'MetricName': metric_name,
                'Value': value,
                'Unit': unit
            }

            if dimensions:
                metric_data['Dimensions'] = [
                    {'Name': k, 'Value': v}
                    for k, v in dimensions.items()
                ]

            self.cloudwatch.put_metric_data(
                Namespace=self.namespace,
                MetricData=[metric_data]
            )

            logger.debug(
                "Metric published to CloudWatch",
                metric_name=metric_name,
                value=value,
                unit=unit,
                dimensions=dimensions,
                namespace=self.namespace
            )

        except Exception as e:
            # Don't fail delivery if metrics fail
            logger.warning(
                "Failed to publish metric",
                metric_name=metric_name,
                value=value,
                error=str(e),
                namespace=self.namespace
            )

    def increment(self, metric_name: str, **dimensions: str) -> None:
        """Publish a count of one, tagged with the stage dimension."""
        if self.stage:
            dimensions.setdefault('Stage', self.stage)
        self.put_metric(metric_name, 1.0, dimensions=dimensions or None)
