from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Response

from ..auth import require_user, token_cookie
from ..errors import AppError, RepositoryError, UseCaseError
from ..modules import Modules, get_modules
from ..schemas import ApiResponse, JsonCreateUser, JsonLoginUser, JsonUser
from ..security import create_access_token
from ..usecases import SearchUserCondition, UserView
from ..utils import success_envelope
from . import api_version

logger = logging.getLogger(__name__)

auth_router = APIRouter(
    prefix="/{v}/auth",
    tags=["user"],
    dependencies=[Depends(api_version)],
)

user_router = APIRouter(
    prefix="/{v}/user",
    tags=["user"],
    dependencies=[Depends(api_version)],
)


# PUBLIC_INTERFACE
@auth_router.post(
    "/create",
    response_model=ApiResponse,
    summary="Create User",
    description="Register a user. Fails when the username is already taken.",
    responses={200: {"description": "user created successfully"}},
)
def create_user(payload: JsonCreateUser, modules: Modules = Depends(get_modules)) -> ApiResponse:
    logger.info(f"create_user username={payload.username}")
    try:
        view = modules.user_use_case.create_user(payload.to_create())
    except (UseCaseError, RepositoryError) as e:
        logger.error(f"{e!r}")
        raise AppError(str(e)) from e
    logger.info(f"created user: {view.id}")
    return success_envelope({"userView": JsonUser.from_view(view)})


# PUBLIC_INTERFACE
@auth_router.post(
    "/login",
    response_model=ApiResponse,
    summary="Login",
    description=(
        "Verify credentials and return the user with a signed session token. "
        "The token is also set as an HttpOnly 'token' cookie."
    ),
    responses={200: {"description": "login one user successfully"}},
)
def login_user(
    payload: JsonLoginUser,
    response: Response,
    modules: Modules = Depends(get_modules),
) -> ApiResponse:
    logger.info(f"login_user username={payload.username}")
    try:
        view = modules.user_use_case.login_user(payload.to_login())
    except (UseCaseError, RepositoryError) as e:
        logger.error(f"Unexpected error: {e!r}")
        raise AppError(str(e)) from e

    token = create_access_token(view.id, view.username, modules.settings)
    response.set_cookie(**token_cookie(token, modules.settings))
    return success_envelope({"userView": JsonUser.from_view(view), "token": token}, message="success.")


# PUBLIC_INTERFACE
@user_router.get(
    "/{id}",
    response_model=ApiResponse,
    summary="Get User",
    description="Get a single user by ID.",
    responses={200: {"description": "Get one user successfully"}},
)
def get_user(
    id: str,
    current_user: UserView = Depends(require_user),
    modules: Modules = Depends(get_modules),
) -> ApiResponse:
    logger.info(f"get_user: id={id}, current_user={current_user.id}")
    try:
        view = modules.user_use_case.get_user(id)
    except (UseCaseError, RepositoryError) as e:
        logger.error(f"Unexpected error: {e!r}")
        raise AppError(str(e)) from e
    if view is None:
        logger.error("user is not found.")
        raise AppError("data not found")
    return success_envelope({"userView": JsonUser.from_view(view)})


# PUBLIC_INTERFACE
@user_router.get(
    "",
    response_model=ApiResponse,
    summary="Get User By Username",
    description="Look a user up by username. Returns null data with message 'user not found.' when absent.",
    responses={200: {"description": "Get one user successfully"}},
)
def get_user_by_username(
    username: str = Query("", description="Username (email) to look up"),
    current_user: UserView = Depends(require_user),
    modules: Modules = Depends(get_modules),
) -> ApiResponse:
    logger.info(f"get_user_by_username: username={username}, current_user={current_user.id}")
    try:
        view = modules.user_use_case.get_user_by_username(SearchUserCondition(username=username.strip()))
    except (UseCaseError, RepositoryError) as e:
        logger.error(f"Unexpected error: {e!r}")
        raise AppError(str(e)) from e
    if view is None:
        return success_envelope(None, message="user not found.")
    return success_envelope({"userView": JsonUser.from_view(view)})
