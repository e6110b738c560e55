"""Metrics about proxy sessions."""

from __future__ import annotations

from packetrelay import metrics
from packetrelay.metrics import Histogram, IntCounter, IntGauge, MetricVec, _once

SUBSYSTEM = "session"
ASN_NUMBER_LABEL = "asn"
IP_PREFIX_LABEL = "ip_prefix"

DURATION_BUCKETS = (1.0, 5.0, 10.0, 25.0, 60.0, 300.0, 900.0, 1800.0, 3600.0)


@_once
def _active_sessions_vec() -> MetricVec:
    return metrics.register(
        MetricVec(
            metrics.opts("active", SUBSYSTEM, "number of sessions currently active"),
            [ASN_NUMBER_LABEL, IP_PREFIX_LABEL],
            IntGauge,
        )
    )


def active_sessions(asn_number: int, ip_prefix: str) -> IntGauge:
    """Gauge of active sessions for an AS number (0 to 65535) and IP prefix."""
    if isinstance(asn_number, bool) or not isinstance(asn_number, int) or not 0 <= asn_number <= 0xFFFF:
        raise ValueError(f"AS number must be an integer from 0 to 65535, got {asn_number!r}")
    return _active_sessions_vec().with_label_values([str(asn_number), ip_prefix])


@_once
def total_sessions() -> IntCounter:
    """Counter of every session established."""
    return metrics.register(
        IntCounter(metrics.opts("total", SUBSYSTEM, "total number of established sessions"))
    )


@_once
def duration_secs() -> Histogram:
    """Histogram of session lifetimes in seconds."""
    return metrics.register(
        Histogram(metrics.histogram_opts("duration_secs", SUBSYSTEM, "duration of sessions", DURATION_BUCKETS))
    )