"""Monitoring subsystem: checkers, heartbeat model, maintenance, SQLite store, scheduler."""

from .checkers import Checker, CheckerRegistry, default_registry
from .maintenance import Maintenance
from .models import Heartbeat, Monitor, Status
from .scheduler import HeartbeatPipeline, MonitorScheduler
from .store import MonitorStore
