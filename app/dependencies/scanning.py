from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from app.api.errors import api_error
from app.scanning.service import ScannerService


async def get_scanner_service(request: Request) -> ScannerService:
    service = getattr(request.app.state, "scanner_service", None)
    if service is None:
        raise api_error(503, "service_unavailable", "Scanner service is not configured")
    return service


ScannerServiceDep = Annotated[ScannerService, Depends(get_scanner_service)]
