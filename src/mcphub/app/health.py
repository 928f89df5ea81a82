"""Best-effort health check for a registered server's command."""

from __future__ import annotations

import subprocess

from mcphub.domain.mcp.value_objects import HealthStatus, Server, ServerHealth
from mcphub.utils.logging import get_logger

logger = get_logger(__name__)

HEALTH_TIMEOUT_SECONDS = 5.0


def check_server_health(server: Server, timeout: float = HEALTH_TIMEOUT_SECONDS) -> ServerHealth:
    """Run ``<command> --version``; every outcome is reported as a record, never raised."""

    try:
        completed = subprocess.run(
            [server.command, "--version"],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        health = ServerHealth(server.id, HealthStatus.ERROR, "Health check timed out")
    except (OSError, ValueError) as exc:
        health = ServerHealth(server.id, HealthStatus.ERROR, f"Failed to execute command: {exc}")
    else:
        if completed.returncode == 0:
            health = ServerHealth(server.id, HealthStatus.HEALTHY)
        else:
            health = ServerHealth(server.id, HealthStatus.UNKNOWN, "Command returned non-zero exit code")
    logger.debug("health.checked", server_id=server.id, status=health.status.value)
    return health


__all__ = ["HEALTH_TIMEOUT_SECONDS", "check_server_health"]
