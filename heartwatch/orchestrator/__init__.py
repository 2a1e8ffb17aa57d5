from heartwatch.orchestrator.server import ServerContext
from heartwatch.orchestrator.timezone import check_timezone

__all__ = ["ServerContext", "check_timezone"]
