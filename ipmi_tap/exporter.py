from __future__ import annotations

import logging
from typing import Iterator

from prometheus_client.core import GaugeMetricFamily
from prometheus_client.registry import Collector, CollectorRegistry

from ipmi_tap.classifier import ALL_FAMILIES, MetricFamily
from ipmi_tap.scheduler import CollectionMode


def _gauge(family: MetricFamily) -> GaugeMetricFamily:
    return GaugeMetricFamily(family.name, family.documentation, labels=list(family.labels))


class IpmiCollector(Collector):
    """prometheus_client collector serving the active collection mode."""

    def __init__(self, mode: CollectionMode) -> None:
        self.mode = mode
        self.logger = logging.getLogger(self.__class__.__name__)

    def describe(self) -> Iterator[GaugeMetricFamily]:
        for family in ALL_FAMILIES:
            yield _gauge(family)

    def collect(self) -> Iterator[GaugeMetricFamily]:
        observations = self.mode.observations()
        self.logger.debug("Serving %s observations.", len(observations))
        gauges: dict[MetricFamily, GaugeMetricFamily] = {}
        for observation in observations:
            gauge = gauges.get(observation.family)
            if gauge is None:
                gauge = gauges[observation.family] = _gauge(observation.family)
            gauge.add_metric(list(observation.labels), observation.value)
        yield from gauges.values()


def build_registry(mode: CollectionMode) -> CollectorRegistry:
    registry = CollectorRegistry()
    registry.register(IpmiCollector(mode))
    return registry
