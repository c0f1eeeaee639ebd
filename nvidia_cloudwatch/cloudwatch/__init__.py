"""CloudWatch push pipeline - samples, windows, aggregator, sink"""

from .aggregator import WindowAggregator
from .dispatcher import FlushDispatcher
from .records import AggregatedRecord, MeasurementRecord, MetricName, Unit
from .samples import build_samples
from .sink import CloudWatchSink, create_cloudwatch_client
from .window import CoalescingWindow, FlushBatch, RawBatchWindow, create_window

__all__ = [
    'AggregatedRecord',
    'MeasurementRecord',
    'MetricName',
    'Unit',
    'build_samples',
    'CoalescingWindow',
    'RawBatchWindow',
    'FlushBatch',
    'create_window',
    'WindowAggregator',
    'FlushDispatcher',
    'CloudWatchSink',
    'create_cloudwatch_client',
]
