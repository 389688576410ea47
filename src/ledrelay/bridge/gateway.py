"""HTTP client for the lighting controller's local JSON API."""

import logging
import socket
import urllib.error
import urllib.request
from typing import Optional

logger = logging.getLogger(__name__)

JSON_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


class GatewayError(Exception):
    """Device gateway call failed."""


class GatewayHTTPError(GatewayError):
    """Device gateway answered with a non-2xx status."""

    def __init__(self, status: int):
        super().__init__(f"HTTP {status}")
        self.status = status


class GatewayTransportError(GatewayError):
    """Device gateway could not be reached or timed out."""


class DeviceGateway:
    """Issues bounded-timeout requests against ``/state``, ``/info`` and ``/cfg``.

    Only the documented endpoints are used; the response body is returned as
    raw bytes so the bridge can relay it without reserializing.
    """

    def __init__(self, host: str, port: int = 80, timeout: float = 10.0, base_path: str = "/json"):
        self._base_url = f"http://{host}:{port}{base_path}"
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    def request(self, method: str, path: str, body: Optional[bytes] = None) -> bytes:
        """Send one request to the device gateway.

        Args:
            method: "GET" or "POST"
            path: Gateway path such as "/state"
            body: Serialized JSON body for POST requests

        Returns:
            Raw response body of a 2xx response

        Raises:
            GatewayHTTPError: On a non-2xx response
            GatewayTransportError: On connection failure or timeout
        """
        url = self._base_url + path
        logger.debug(f"HTTP {method} {url}")

        req = urllib.request.Request(
            url,
            data=body if method == "POST" else None,
            headers=JSON_HEADERS,
            method=method,
        )

        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as response:
                status = response.status
                payload = response.read()
        except urllib.error.HTTPError as e:
            raise GatewayHTTPError(e.code) from e
        except urllib.error.URLError as e:
            raise GatewayTransportError(str(e.reason)) from e
        except (socket.timeout, TimeoutError) as e:
            raise GatewayTransportError("timed out") from e
        except OSError as e:
            raise GatewayTransportError(str(e)) from e

        if not 200 <= status < 300:
            raise GatewayHTTPError(status)
        return payload

    def get_state(self) -> bytes:
        return self.request("GET", "/state")
