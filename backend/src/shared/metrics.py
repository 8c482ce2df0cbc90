from opentelemetry import metrics
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    MetricReader,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import Resource


def setup_metrics(app_name: str, console_export: bool = True) -> MeterProvider:
    """Install the meter provider behind `certs.metrics`.

    Prometheus is always scraped; the console exporter is optional since the
    signing duration histogram is noisy on a busy reconcile loop.
    Returns the provider so the caller can shut it down.
    """
    resource = Resource.create({"service.name": app_name})

    readers: list[MetricReader] = [PrometheusMetricReader()]
    if console_export:
        readers.append(PeriodicExportingMetricReader(ConsoleMetricExporter()))

    provider = MeterProvider(resource=resource, metric_readers=readers)
    metrics.set_meter_provider(provider)
    return provider
