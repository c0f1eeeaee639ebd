"""Pull-side exporters - live gauges and the HTTP scrape endpoint"""

from .gauges import GAUGE_INTERVAL, GpuGauges, LiveGaugePublisher
from .server import METRICS_PATH, create_app, create_server

__all__ = [
    'GAUGE_INTERVAL',
    'GpuGauges',
    'LiveGaugePublisher',
    'METRICS_PATH',
    'create_app',
    'create_server',
]
