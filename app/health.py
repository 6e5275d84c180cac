"""
Health check endpoints for liveness and readiness probes.
"""
from datetime import datetime, timezone
import time
from typing import Dict, Any
import psutil
from .automation.backends import RuleBackend
from .logging import get_logger, SERVICE_NAME

logger = get_logger()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class HealthChecker:
    """
    Health checker for the automation engine.

    Provides:
    - Liveness checks (is the service running?)
    - Readiness checks (can the service load and persist rules?)
    """

    def __init__(self, backend: RuleBackend, service_name: str = SERVICE_NAME, version: str = "0.1.0"):
        self.backend = backend
        self.service_name = service_name
        self.version = version

    def liveness(self) -> Dict[str, Any]:
        """
        Liveness check - basic health check.

        Returns:
            dict: Health status with service info and timestamp
        """
        return {
            "status": "ok",
            "service": self.service_name,
            "version": self.version,
            "timestamp": _timestamp(),
        }

    async def readiness(self) -> Dict[str, Any]:
        """
        Readiness check - comprehensive health check.

        Checks:
        - Rule store backend reachability
        - Disk space availability
        - Memory availability

        Returns:
            dict: Readiness status with detailed check results
        """
        checks = {
            "rule_store": self._check_rule_store(),
            "disk_space": self._check_disk_space(),
            "memory": self._check_memory(),
        }
        # Warnings are reported but do not take the service out of rotation
        overall_status = "ready"
        if any(check["status"] == "error" for check in checks.values()):
            overall_status = "not_ready"

        return {
            "status": overall_status,
            "service": self.service_name,
            "version": self.version,
            "timestamp": _timestamp(),
            "checks": checks,
        }

    def _check_rule_store(self) -> Dict[str, Any]:
        """
        Check the rule store backend.

        Returns:
            dict: Backend health check result
        """
        backend_name = type(self.backend).__name__
        start = time.time()
        try:
            healthy = self.backend.health_check()
        except Exception as e:
            logger.warning("rule_store_health_check_failed", backend=backend_name, error=str(e))
            return {"status": "error", "backend": backend_name, "error": str(e)}

        if not healthy:
            logger.warning("rule_store_health_check_failed", backend=backend_name)
            return {"status": "error", "backend": backend_name}

        return {
            "status": "ok",
            "backend": backend_name,
            "latency_ms": round((time.time() - start) * 1000, 2),
        }

    def _check_disk_space(self, threshold_gb: float = 1.0) -> Dict[str, Any]:
        """
        Check available disk space.

        Args:
            threshold_gb: Minimum available disk space in GB (default: 1.0)

        Returns:
            dict: Disk space health check result
        """
        try:
            disk = psutil.disk_usage("/")
            available_gb = disk.free / (1024**3)

            if available_gb < threshold_gb:
                status = "error"
            elif available_gb < threshold_gb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_gb": round(available_gb, 2),
                "total_gb": round(disk.total / (1024**3), 2),
                "used_percent": disk.percent,
            }

        except Exception as e:
            logger.warning("disk_health_check_failed", error=str(e))
            return {
                "status": "error",
                "error": str(e),
            }

    def _check_memory(self, threshold_mb: float = 50.0) -> Dict[str, Any]:
        """
        Check available memory.

        Args:
            threshold_mb: Minimum available memory in MB (default: 50.0)

        Returns:
            dict: Memory health check result
        """
        try:
            memory = psutil.virtual_memory()
            available_mb = memory.available / (1024**2)

            if available_mb < threshold_mb:
                status = "error"
            elif available_mb < threshold_mb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_mb": round(available_mb, 2),
                "total_mb": round(memory.total / (1024**2), 2),
                "used_percent": memory.percent,
            }

        except Exception as e:
            logger.warning("memory_health_check_failed", error=str(e))
            return {
                "status": "error",
                "error": str(e),
            }
