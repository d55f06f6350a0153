import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.api.errors import api_error
from app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class ScannerIdentity:
    """Authenticated scanning device."""

    def __init__(self, scanner_id: str, scanner_name: str | None = None):
        self.scanner_id = scanner_id
        self.scanner_name = scanner_name

    def display_name(self, fallback: str | None = None) -> str | None:
        """Name from the X-Scanner-Name header, else the name sent in the body."""

        return self.scanner_name or fallback or None

    def actor(self, fallback_name: str | None = None) -> str:
        return self.display_name(fallback_name) or self.scanner_id


bearer_scheme = HTTPBearer(auto_error=False)

SettingsDep = Annotated[Settings, Depends(get_settings)]
BearerCredentials = Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)]


def keys_match(provided: str | None, expected: str) -> bool:
    """Constant-time comparison of a presented API key with the configured one."""

    if not provided:
        return False
    return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


async def get_current_scanner(
    credentials: BearerCredentials,
    settings: SettingsDep,
    x_scanner_id: Annotated[str | None, Header()] = None,
    x_scanner_name: Annotated[str | None, Header()] = None,
) -> ScannerIdentity:
    """Authenticate a scanner by the shared API key and its device id header."""

    if not settings.scanner_api_key:
        logger.error("Scanner API key is not configured")
        raise api_error(500, "server_configuration_error", "Server configuration error")

    token = credentials.credentials if credentials is not None else None
    if not keys_match(token, settings.scanner_api_key):
        logger.warning("Invalid scanner API key presented by scanner %s", x_scanner_id or "unknown")
        raise api_error(401, "unauthorized", "Invalid API key")

    if not x_scanner_id or not x_scanner_id.strip():
        logger.warning("Scanner request without X-Scanner-ID header")
        raise api_error(400, "invalid_request", "Scanner ID is required in X-Scanner-ID header")

    logger.debug("Scanner %s authenticated", x_scanner_id)
    return ScannerIdentity(scanner_id=x_scanner_id.strip(), scanner_name=x_scanner_name or None)


async def require_admin(credentials: BearerCredentials, settings: SettingsDep) -> str:
    """Gate privileged operations behind the separately configured admin key."""

    if not settings.admin_api_key:
        logger.error("Admin API key is not configured")
        raise api_error(500, "server_configuration_error", "Server configuration error")

    token = credentials.credentials if credentials is not None else None
    if not keys_match(token, settings.admin_api_key):
        logger.warning("Invalid admin API key presented")
        raise api_error(403, "forbidden", "Admin access required")
    return "admin"


CurrentScanner = Annotated[ScannerIdentity, Depends(get_current_scanner)]
AdminAccess = Annotated[str, Depends(require_admin)]
