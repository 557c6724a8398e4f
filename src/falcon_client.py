# falcon_client.py
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

import requests

from src.config import FalconConfig
from src.errors import (
    AuthenticationError,
    CommandExecutionError,
    ConfigurationError,
    FalconError,
    SessionError,
    TransportError,
    ValidationError,
)

logger = logging.getLogger("falcon-mcp.client")

DEFAULT_LIMIT = 50
TOKEN_EXPIRY_MARGIN = 60  # seconds shaved off the advertised token lifetime
RTR_ORIGIN = "mcp-server"

TOKEN_ENDPOINT = "/oauth2/token"
DETECTIONS_QUERY_ENDPOINT = "/detects/queries/detects/v1"
DETECTIONS_ENTITIES_ENDPOINT = "/detects/entities/summaries/GET/v1"
DEVICES_QUERY_ENDPOINT = "/devices/queries/devices/v1"
DEVICES_ENTITIES_ENDPOINT = "/devices/entities/devices/v2"
INCIDENTS_QUERY_ENDPOINT = "/incidents/queries/incidents/v1"
INCIDENTS_ENTITIES_ENDPOINT = "/incidents/entities/incidents/GET/v1"
IOCS_QUERY_ENDPOINT = "/indicators/queries/iocs/v1"
RTR_SESSIONS_ENDPOINT = "/real-time-response/entities/sessions/v1"
RTR_COMMAND_ENDPOINT = "/real-time-response/entities/command/v1"


def _error_detail(resp) -> str:
    """Pull the human readable part out of a Falcon error response."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    errors = body.get("errors") if isinstance(body, dict) else None
    if errors:
        messages = [str(e["message"]) for e in errors if isinstance(e, dict) and e.get("message")]
        if messages:
            return "; ".join(messages)
    return resp.text


def _resolve_limit(limit) -> int:
    # 0 and None both fall back to the default page size
    if not limit:
        return DEFAULT_LIMIT
    if isinstance(limit, bool) or not isinstance(limit, (int, float)):
        raise ValidationError(f"limit must be a positive integer, got {limit!r}")
    if isinstance(limit, float):
        if not limit.is_integer():
            raise ValidationError(f"limit must be a positive integer, got {limit!r}")
        limit = int(limit)
    if limit < 1:
        raise ValidationError(f"limit must be a positive integer, got {limit!r}")
    return limit


def _require_ids(ids, kind: str) -> List[str]:
    if not ids:
        raise ValidationError(f"At least one {kind} ID is required")
    if not isinstance(ids, (list, tuple)):
        raise ValidationError(f"{kind.capitalize()} IDs must be a list of strings")
    if not all(isinstance(i, str) and i for i in ids):
        raise ValidationError(f"{kind.capitalize()} IDs must be non-empty strings")
    return list(ids)


def _comma_joined(values, name: str) -> Optional[str]:
    if values is None or values == "" or values == []:
        return None
    if isinstance(values, str):
        return values
    if not isinstance(values, (list, tuple)) or not all(isinstance(v, str) for v in values):
        raise ValidationError(f"{name} must be a string or a list of strings")
    return ",".join(values) or None


class TokenManager:
    """
    Holds the OAuth2 bearer token for one set of Falcon API credentials.
    The token is fetched lazily and reused until `TOKEN_EXPIRY_MARGIN` seconds
    before the lifetime advertised by the token endpoint runs out.
    """

    def __init__(self, config: FalconConfig, clock: Callable[[], float] = time.monotonic):
        self._config = config
        self._clock = clock
        self._access_token: Optional[str] = None
        self._expires_at = 0.0

    @property
    def has_valid_token(self) -> bool:
        return self._access_token is not None and self._clock() < self._expires_at

    def invalidate(self):
        self._access_token = None
        self._expires_at = 0.0

    def get_token(self) -> str:
        if not self._config.client_id or not self._config.client_secret:
            raise ConfigurationError("Falcon client id and client secret must both be set")

        if self.has_valid_token:
            return self._access_token

        return self._authenticate()

    def _authenticate(self) -> str:
        url = f"{self._config.base_url}{TOKEN_ENDPOINT}"
        logger.info("Requesting a new Falcon API token")
        try:
            resp = requests.post(
                url,
                data={"grant_type": "client_credentials"},
                auth=(self._config.client_id, self._config.client_secret),
                headers={"Accept": "application/json"},
                timeout=self._config.request_timeout,
            )
        except requests.RequestException as e:
            raise AuthenticationError(detail=str(e)) from e

        if not resp.ok:
            raise AuthenticationError(resp.status_code, _error_detail(resp))

        try:
            data = resp.json()
        except ValueError:
            raise AuthenticationError(resp.status_code, "token response was not valid JSON")

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise AuthenticationError(resp.status_code, "token response did not contain an access_token")

        try:
            expires_in = float(data.get("expires_in"))
        except (TypeError, ValueError):
            raise AuthenticationError(resp.status_code, "token response did not contain a valid expires_in")

        self._access_token = token
        self._expires_at = self._clock() + expires_in - TOKEN_EXPIRY_MARGIN
        logger.debug("Falcon API token cached for %.0f seconds", expires_in - TOKEN_EXPIRY_MARGIN)
        return token


class SessionState(Enum):
    IDLE = "idle"
    SESSION_REQUESTED = "session_requested"
    SESSION_ACTIVE = "session_active"
    COMMAND_SENT = "command_sent"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RTRSession:
    device_id: str
    session_id: Optional[str] = None
    state: SessionState = SessionState.IDLE


class FalconClient:
    """
    Thin wrapper over the CrowdStrike Falcon REST API.
    Every call goes through `request`, which attaches a bearer token from the
    token manager and returns the decoded JSON body untouched.
    """

    def __init__(self, config: FalconConfig, token_manager: TokenManager = None):
        self.config = config
        self.token_manager = token_manager or TokenManager(config)

    def request(self, method: str, endpoint: str, params: dict = None, body: dict = None):
        token = self.token_manager.get_token()
        url = f"{self.config.base_url}{endpoint}"
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        logger.debug("%s %s params=%s", method, endpoint, params)
        try:
            resp = requests.request(
                method,
                url,
                headers=headers,
                params=params,
                json=body,
                timeout=self.config.request_timeout,
            )
        except requests.RequestException as e:
            raise TransportError(detail=str(e)) from e

        if not resp.ok:
            raise TransportError(resp.status_code, _error_detail(resp))

        try:
            return resp.json()
        except ValueError:
            raise TransportError(resp.status_code, "response body was not valid JSON")

    # --- Queries ---

    def _query(self, endpoint: str, filter: str = None, limit: int = None):
        params = {"limit": _resolve_limit(limit)}
        if filter:
            params["filter"] = filter
        return self.request("GET", endpoint, params=params)

    def list_detections(self, filter: str = None, limit: int = None):
        """Query detection IDs, optionally narrowed by an FQL filter."""
        return self._query(DETECTIONS_QUERY_ENDPOINT, filter, limit)

    def get_detection_details(self, ids: List[str] = None):
        ids = _require_ids(ids, "detection")
        return self.request("GET", DETECTIONS_ENTITIES_ENDPOINT, params={"ids": ids})

    def list_devices(self, filter: str = None, limit: int = None):
        """Query device (host) IDs, optionally narrowed by an FQL filter."""
        return self._query(DEVICES_QUERY_ENDPOINT, filter, limit)

    def get_device_details(self, ids: List[str] = None):
        ids = _require_ids(ids, "device")
        return self.request("GET", DEVICES_ENTITIES_ENDPOINT, params={"ids": ids})

    def list_incidents(self, filter: str = None, limit: int = None):
        """Query incident IDs, optionally narrowed by an FQL filter."""
        return self._query(INCIDENTS_QUERY_ENDPOINT, filter, limit)

    def get_incident_details(self, ids: List[str] = None):
        ids = _require_ids(ids, "incident")
        return self.request("GET", INCIDENTS_ENTITIES_ENDPOINT, params={"ids": ids})

    def search_indicators(self, types: List[str] = None, values: List[str] = None, limit: int = None):
        """
        Search custom IOCs.
        Args:
            types (list): IOC types such as 'domain', 'ipv4', 'md5', 'sha256'.
            values (list): IOC values to match.
            limit (int): Maximum number of results, 50 when omitted.
        Returns:
            dict: The raw Falcon response body.
        """
        params = {"limit": _resolve_limit(limit)}
        joined_types = _comma_joined(types, "types")
        if joined_types:
            params["types"] = joined_types
        joined_values = _comma_joined(values, "values")
        if joined_values:
            params["values"] = joined_values
        return self.request("GET", IOCS_QUERY_ENDPOINT, params=params)

    # --- Real Time Response ---

    @contextmanager
    def rtr_session(self, device_id: str):
        """
        Open an RTR session on `device_id` and yield it.
        The session is deleted on every exit path once it has been created.
        """
        session = RTRSession(device_id=device_id)
        session.state = SessionState.SESSION_REQUESTED
        try:
            result = self.request(
                "POST",
                RTR_SESSIONS_ENDPOINT,
                body={"device_id": device_id, "origin": RTR_ORIGIN},
            )
        except TransportError as e:
            session.state = SessionState.FAILED
            raise SessionError(f"Failed to create RTR session: {e}") from e
        except FalconError:
            session.state = SessionState.FAILED
            raise

        resources = (result.get("resources") if isinstance(result, dict) else None) or []
        first = resources[0] if resources else None
        session_id = first.get("session_id") if isinstance(first, dict) else None
        if not session_id:
            session.state = SessionState.FAILED
            raise SessionError("Failed to create RTR session: response contained no session_id")

        session.session_id = session_id
        session.state = SessionState.SESSION_ACTIVE
        logger.info("Opened RTR session %s on device %s", session_id, device_id)

        try:
            yield session
        except Exception:
            session.state = SessionState.FAILED
            raise
        finally:
            self._close_rtr_session(session)
        session.state = SessionState.COMPLETED

    def _close_rtr_session(self, session: RTRSession):
        try:
            self.request("DELETE", RTR_SESSIONS_ENDPOINT, params={"session_id": session.session_id})
        except Exception as e:
            # Never let cleanup replace the command outcome
            logger.warning("Failed to delete RTR session %s: %s", session.session_id, e)
        else:
            logger.info("Closed RTR session %s", session.session_id)

    def run_remote_command(self, device_id: str = None, command: str = None, arguments: str = None):
        """
        Run one RTR command on a device: create a session, execute the command,
        then delete the session.
        """
        if not device_id or not command:
            raise ValidationError("device_id and command are required")
        if not isinstance(device_id, str) or not isinstance(command, str):
            raise ValidationError("device_id and command must be strings")

        with self.rtr_session(device_id) as session:
            body = {"base_command": command, "session_id": session.session_id}
            if arguments:
                body["command_string"] = f"{command} {arguments}"

            session.state = SessionState.COMMAND_SENT
            try:
                return self.request("POST", RTR_COMMAND_ENDPOINT, body=body)
            except FalconError as e:
                raise CommandExecutionError(f"RTR command '{command}' failed: {e}") from e
