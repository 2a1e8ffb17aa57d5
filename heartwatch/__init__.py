"""heartwatch: periodic endpoint probes, heartbeats and live per-user fan-out."""

__version__ = "0.1.0"
