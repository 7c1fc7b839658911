from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response, status

from ..errors import RepositoryError
from ..modules import Modules, get_modules
from . import api_version

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/{v}/hc",
    tags=["health"],
    dependencies=[Depends(api_version)],
)


# PUBLIC_INTERFACE
@router.get(
    "",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Health Check",
    description="Liveness probe. Returns 204 without touching the database.",
    responses={204: {"description": "Service is up"}},
)
def hc() -> Response:
    logger.debug("Access health check endpoint.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# PUBLIC_INTERFACE
@router.get(
    "/postgres",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Database Health Check",
    description="Runs a trivial query in a transaction. Returns 503 when the database is unreachable.",
    responses={
        204: {"description": "Database reachable"},
        503: {"description": "Database unreachable"},
    },
)
def hc_postgres(modules: Modules = Depends(get_modules)) -> Response:
    try:
        modules.health_check_use_case.diagnose_db_conn()
    except RepositoryError as e:
        logger.error(f"{e!r}")
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    logger.debug("Access postgres health check endpoint.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
