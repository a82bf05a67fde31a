"""
Ticket External Service Integrations
====================================

External services used by the ticket module:
- Geo-IP lookup (ipify for the public IP, ip-api for geolocation)
- YAML SLA policy file with hot reload
"""

import ipaddress
import threading
from pathlib import Path
from typing import Optional

import httpx
import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from config import settings
from shared.infrastructure.logging import get_logger
from tickets.application import GeoLookupResult, IGeoIPLookup, ISLAPolicyProvider
from tickets.domain import GeoLocation, SLAPolicy

logger = get_logger(__name__)

# Errors a single lookup can end with; all of them mean "no data"
_LOOKUP_ERRORS = (httpx.HTTPError, ValueError, KeyError, TypeError)


def is_public_ip(value: Optional[str]) -> bool:
    """True for a syntactically valid, globally routable address."""
    if not value:
        return False
    try:
        return ipaddress.ip_address(value).is_global
    except ValueError:
        return False


class GeoIPClient(IGeoIPLookup):
    """
    Geo-IP client with bounded timeouts and fail-soft semantics.

    Every public method returns ``None``/``False`` instead of raising when
    the remote service is slow, unreachable or answers with garbage. A
    single attempt is made per call.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        ipify_url: Optional[str] = None,
        ip_api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        test_timeout: Optional[float] = None
    ):
        self._http_client = http_client
        self._owns_client = http_client is None
        self._ipify_url = ipify_url or settings.ipify_url
        self._ip_api_url = (ip_api_url or settings.ip_api_url).rstrip("/")
        self._timeout = timeout or settings.geoip_timeout_seconds
        self._test_timeout = test_timeout or settings.geoip_test_timeout_seconds

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def get_client_ip(self) -> Optional[str]:
        """Public IP address as reported by ipify."""
        try:
            client = await self._get_client()
            response = await client.get(self._ipify_url, timeout=self._timeout)
            response.raise_for_status()
            ip = response.json()["ip"]
        except _LOOKUP_ERRORS as e:
            logger.error(
                "Public IP lookup failed",
                extra={"error": str(e), "error_type": type(e).__name__}
            )
            return None

        logger.info("Public IP resolved", extra={"ip": ip})
        return ip

    async def get_ip_info(self, ip: Optional[str]) -> Optional[GeoLocation]:
        """Geolocation for ``ip``; None when ip-api does not answer with success."""
        if not ip:
            logger.warning("Geolocation requested without an IP")
            return None

        try:
            client = await self._get_client()
            response = await client.get(f"{self._ip_api_url}/{ip}", timeout=self._timeout)
            response.raise_for_status()
            data = response.json()
            if data.get("status") != "success":
                logger.warning(
                    "Geolocation service returned an error status",
                    extra={"ip": ip, "status": data.get("status"), "reason": data.get("message")}
                )
                return None
            location = GeoLocation(
                country=data.get("country"),
                region=data.get("regionName"),
                city=data.get("city"),
                isp=data.get("isp"),
                lat=data.get("lat"),
                lon=data.get("lon"),
            )
        except (*_LOOKUP_ERRORS, AttributeError) as e:
            logger.error(
                "Geolocation lookup failed",
                extra={"ip": ip, "error": str(e), "error_type": type(e).__name__}
            )
            return None

        logger.info("Geolocation resolved", extra={"ip": ip, "country": location.country})
        return location

    async def lookup(self, client_ip: Optional[str] = None) -> GeoLookupResult:
        """
        Resolve the address and location of a client.

        Private, loopback and missing addresses are replaced by the public
        IP reported by ipify.
        """
        ip = client_ip if is_public_ip(client_ip) else await self.get_client_ip()
        if not ip:
            return GeoLookupResult(ip=client_ip)
        return GeoLookupResult(ip=ip, location=await self.get_ip_info(ip))

    async def test_connection(self) -> bool:
        """Connectivity check against ipify with the short test timeout."""
        try:
            client = await self._get_client()
            response = await client.get(self._ipify_url, timeout=self._test_timeout)
            return response.status_code == 200 and "ip" in response.json()
        except _LOOKUP_ERRORS as e:
            logger.error("Geo-IP connectivity test failed", extra={"error": str(e)})
            return False

    async def close(self) -> None:
        """Close HTTP client (only when this instance created it)."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None


class SLAPolicyFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA policy file changes."""

    def __init__(self, manager: "SLAPolicyManager", config_path: Path):
        self.manager = manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        """Handle file modification event."""
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info(f"SLA policy file changed: {event.src_path}")
            self.manager.reload()


class SLAPolicyManager(ISLAPolicyProvider):
    """
    Thread-safe SLA policy holder with hot-reload support.

    Uses watchdog to monitor the YAML file and swap the policy without
    restarting the service. Until a file is loaded the default offsets apply.
    """

    def __init__(self):
        self._policy = SLAPolicy()
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> SLAPolicy:
        """Initial policy load. Invalid files raise."""
        self._path = Path(path)
        policy = self._load_from_file(self._path)
        with self._lock:
            self._policy = policy
        return policy

    def _load_from_file(self, path: Path) -> SLAPolicy:
        """Load and parse YAML policy file."""
        if not path.exists():
            logger.warning(f"SLA policy file not found: {path}, using defaults")
            return SLAPolicy()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return SLAPolicy(**data)

    def reload(self) -> bool:
        """Reload policy from file, keeping the current one if the file is invalid."""
        if self._path is None:
            return False

        try:
            policy = self._load_from_file(self._path)
        except (yaml.YAMLError, ValidationError, TypeError, OSError) as e:
            logger.error(f"Failed to reload SLA policy: {e}", extra={"path": str(self._path)})
            return False

        with self._lock:
            self._policy = policy
        logger.info(
            "SLA policy reloaded successfully",
            extra={"resolution_hours": policy.resolution_hours}
        )
        return True

    def start_watching(self) -> None:
        """
        Start watching the policy file for changes.

        Skips watching if the file doesn't exist or the platform has no
        file-system notifications (some containers).
        """
        if self._path is None:
            raise RuntimeError("SLA policy not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                f"SLA policy file doesn't exist, skipping file watch: {self._path}. "
                "Using default SLA offsets."
            )
            return

        try:
            self._observer = Observer()
            handler = SLAPolicyFileHandler(self, self._path)
            self._observer.schedule(
                handler,
                str(self._path.parent),
                recursive=False
            )
            self._observer.start()
            logger.info(f"Started watching SLA policy file: {self._path}")
        except OSError as e:
            logger.warning(f"File watching not available, using static SLA policy: {e}")
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching the policy file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def get_policy(self) -> SLAPolicy:
        with self._lock:
            return self._policy


# Global instance, loaded at startup
sla_policy_manager = SLAPolicyManager()
