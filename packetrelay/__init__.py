"""Building blocks for a UDP packet relay: TTL maps, metadata, protobuf helpers and metrics."""

__version__ = "0.1.0"