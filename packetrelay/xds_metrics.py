"""Metrics of the discovery-service client and server."""

from __future__ import annotations

from typing import Any

from packetrelay import metrics
from packetrelay.metrics import IntCounter, IntGauge, MetricVec, Opts, _once

CONTROL_PLANE_LABEL = "control_plane"
NODE_LABEL = "node"
TYPE_LABEL = "type"


@_once
def active_xds_clients() -> MetricVec:
    """Gauge of active discovery clients, by node."""
    return metrics.register(
        MetricVec(Opts("active_xds_clients", "Total number of active xDS clients"), [NODE_LABEL], IntGauge)
    )


@_once
def discovery_requests() -> MetricVec:
    """Counter of discovery requests, by node and resource type."""
    return metrics.register(
        MetricVec(
            Opts("discovery_requests", "Total number of xDS discovery requests"),
            [NODE_LABEL, TYPE_LABEL],
            IntCounter,
        )
    )


@_once
def discovery_responses() -> MetricVec:
    """Counter of discovery responses, by control plane and resource type."""
    return metrics.register(
        MetricVec(
            Opts("discovery_responses", "Total number of xDS discovery responses"),
            [CONTROL_PLANE_LABEL, TYPE_LABEL],
            IntCounter,
        )
    )


@_once
def acks() -> MetricVec:
    """Counter of acknowledged responses, by node and resource type."""
    return metrics.register(
        MetricVec(Opts("xds_acks", "Total number of xDS ACKs"), [NODE_LABEL, TYPE_LABEL], IntCounter)
    )


@_once
def nacks() -> MetricVec:
    """Counter of rejected responses, by node and resource type."""
    return metrics.register(
        MetricVec(Opts("xds_nacks", "Total number of xDS NACKs"), [NODE_LABEL, TYPE_LABEL], IntCounter)
    )


class StreamConnectionMetrics:
    """Counts a stream as an active client for `node` until closed."""

    def __init__(self, node: str) -> None:
        self.node = str(node)
        self._gauge = active_xds_clients().with_label_values([self.node])
        self._gauge.inc()
        self._closed = False

    def close(self) -> None:
        """Stop counting the stream; further calls do nothing."""
        if not self._closed:
            self._closed = True
            self._gauge.dec()

    def __enter__(self) -> "StreamConnectionMetrics":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()