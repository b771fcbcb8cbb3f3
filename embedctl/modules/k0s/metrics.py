"""Installation telemetry.

Events are posted as JSON to ``{base_url}/embedded_cluster_metrics/<Event>``.
Reporting is best effort: every failure is logged and swallowed so it can
never replace the error of the phase being reported.
"""

import logging
import socket
import uuid
from typing import Any, Dict, Optional

import requests

from embedctl.config import Config
from .models import ProxySpec

logger = logging.getLogger("embedctl.k0s.metrics")

INSTALLATION_STARTED = 'InstallationStarted'
INSTALLATION_SUCCEEDED = 'InstallationSucceeded'
INSTALLATION_FAILED = 'InstallationFailed'
JOIN_STARTED = 'JoinStarted'
JOIN_SUCCEEDED = 'JoinSucceeded'
JOIN_FAILED = 'JoinFailed'


class MetricsReporter:
    """Posts install and join lifecycle events to the metrics endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        cluster_id: Optional[str] = None,
        proxy: Optional[ProxySpec] = None,
        license_id: str = "",
    ):
        self.base_url = (base_url or Config.METRICS_BASE_URL).rstrip('/')
        self.cluster_id = cluster_id or str(uuid.uuid4())
        self.proxy = proxy
        self.license_id = license_id
        self.enabled = not Config.DISABLE_TELEMETRY

    def _payload(self, **extra: Any) -> Dict[str, Any]:
        payload = {
            'clusterID': self.cluster_id,
            'version': Config.VERSION,
            'binaryName': Config.BINARY_NAME,
        }
        if self.license_id:
            payload['licenseID'] = self.license_id
        payload.update(extra)
        return payload

    def send(self, event: str, payload: Dict[str, Any]) -> bool:
        """Post a single event; returns False when it was not delivered."""
        if not self.enabled:
            logger.debug(f"Telemetry disabled, not sending {event}")
            return False
        url = f"{self.base_url}/embedded_cluster_metrics/{event}"
        proxies = self.proxy.to_requests() if self.proxy else None
        try:
            response = requests.post(url, json={'event': payload}, proxies=proxies, timeout=Config.API_TIMEOUT)
            if response.status_code >= 400:
                logger.debug(f"Metrics endpoint rejected {event}: {response.status_code} {response.text}")
                return False
        except requests.RequestException as e:
            logger.debug(f"Unable to send {event} event: {e}")
            return False
        logger.debug(f"Sent {event} event")
        return True

    def install_started(self) -> bool:
        return self.send(INSTALLATION_STARTED, self._payload())

    def install_finished(self, err: Optional[BaseException] = None) -> bool:
        """Report the outcome of an installation; ``err`` is None on success."""
        if err is None:
            return self.send(INSTALLATION_SUCCEEDED, self._payload())
        return self.send(INSTALLATION_FAILED, self._payload(reason=str(err)))

    def join_started(self) -> bool:
        return self.send(JOIN_STARTED, self._payload(nodeName=socket.gethostname()))

    def join_finished(self, err: Optional[BaseException] = None) -> bool:
        """Report the outcome of a join; ``err`` is None on success."""
        node = socket.gethostname()
        if err is None:
            return self.send(JOIN_SUCCEEDED, self._payload(nodeName=node))
        return self.send(JOIN_FAILED, self._payload(nodeName=node, reason=str(err)))
