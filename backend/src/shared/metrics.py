from opentelemetry import metrics
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    MetricReader,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import Resource


def setup_metrics(app_name: str, console: bool = True) -> MeterProvider:
    """Configure OpenTelemetry metrics for the tmppki meter.

    Prometheus is always attached; the console reader prints a final export
    when the provider shuts down, which is the only view a bundle that lives
    for a few seconds ever gets.
    """
    resource = Resource.create({"service.name": app_name})

    readers: list[MetricReader] = [PrometheusMetricReader()]
    if console:
        readers.append(PeriodicExportingMetricReader(ConsoleMetricExporter()))

    provider = MeterProvider(resource=resource, metric_readers=readers)
    metrics.set_meter_provider(provider)

    return provider
