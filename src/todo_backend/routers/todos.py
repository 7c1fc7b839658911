from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth import require_user
from ..errors import AppError, RepositoryError, UseCaseError
from ..modules import Modules, get_modules
from ..schemas import (
    ApiResponse,
    JsonCreateTodo,
    JsonTodo,
    JsonTodoList,
    JsonUpdateTodoContents,
    JsonUpsertTodoContents,
)
from ..usecases import SearchTodoCondition, TodoView
from ..utils import success_envelope
from . import api_version

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/{v}/todo",
    tags=["todo"],
    dependencies=[Depends(api_version), Depends(require_user)],
    responses={400: {"description": "Missing or expired jwt / validation error", "model": ApiResponse}},
)


def _todo_envelope(view: TodoView) -> ApiResponse:
    return success_envelope({"todoView": JsonTodo.from_view(view)})


# PUBLIC_INTERFACE
@router.get(
    "/{id}",
    response_model=ApiResponse,
    summary="Get Todo",
    description="Get a single Todo item by ID.",
    responses={200: {"description": "Get one todo successfully"}},
)
def get_todo(id: str, modules: Modules = Depends(get_modules)) -> ApiResponse:
    logger.info(f"get_todo: id={id}")
    try:
        view = modules.todo_use_case.get_todo(id)
    except (UseCaseError, RepositoryError) as e:
        logger.error(f"Unexpected error: {e!r}")
        raise AppError(str(e)) from e
    if view is None:
        logger.error("todo is not found.")
        raise AppError("data not found")
    logger.info(f"found todo `{view.id}`.")
    return _todo_envelope(view)


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=ApiResponse,
    summary="Find Todos",
    description=(
        "List todos ordered by creation time.\n\n"
        "Query parameters:\n"
        "- status: optional status code filter (e.g. new, working, waiting, done, discontinued)\n\n"
        "Returns an empty list with message 'todo not found.' when nothing matches."
    ),
    responses={200: {"description": "find all todos successfully"}},
)
def find_todo(
    status: Optional[str] = Query(None, description="Filter by status code"),
    modules: Modules = Depends(get_modules),
) -> ApiResponse:
    logger.info(f"find_todo: status={status}")
    condition = SearchTodoCondition(status_code=status.strip() if status and status.strip() else None)
    try:
        views = modules.todo_use_case.find_todo(condition)
    except (UseCaseError, RepositoryError) as e:
        logger.error(f"Unexpected error: {e!r}")
        raise AppError(str(e)) from e

    todos = JsonTodoList(todos=[JsonTodo.from_view(v) for v in views], total=len(views))
    message = "success" if views else "todo not found."
    return success_envelope({"todoView": todos}, message=message)


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=ApiResponse,
    summary="Create Todo",
    description="Create a new Todo item in the default status and return the created resource.",
    responses={200: {"description": "todo created successfully"}},
)
def create_todo(payload: JsonCreateTodo, modules: Modules = Depends(get_modules)) -> ApiResponse:
    logger.info(f"create_todo: {payload!r}")
    try:
        view = modules.todo_use_case.create_todo(payload.to_create())
    except (UseCaseError, RepositoryError) as e:
        logger.error(f"{e!r}")
        raise AppError("server_error") from e
    logger.info(f"created todo: {view.id}")
    return _todo_envelope(view)


# PUBLIC_INTERFACE
@router.patch(
    "/{id}",
    response_model=ApiResponse,
    summary="Update Todo",
    description="Partially update fields of a Todo item. Omitted fields keep their current value.",
    responses={200: {"description": "Todo item updated successfully"}},
)
def update_todo(id: str, payload: JsonUpdateTodoContents, modules: Modules = Depends(get_modules)) -> ApiResponse:
    logger.info(f"update_todo: {payload!r}")
    try:
        view = modules.todo_use_case.update_todo(payload.to_view(id))
    except (UseCaseError, RepositoryError) as e:
        logger.error(f"{e!r}")
        raise AppError(str(e)) from e
    if view is None:
        logger.error("todo is not found.")
        raise AppError("data not found")
    logger.info(f"updated todo {view.id}")
    return _todo_envelope(view)


# PUBLIC_INTERFACE
@router.put(
    "/{id}",
    response_model=ApiResponse,
    summary="Upsert Todo",
    description="Create the Todo item with this ID, or replace every field of the existing one.",
    responses={200: {"description": "Todo item upserted successfully"}},
)
def upsert_todo(id: str, payload: JsonUpsertTodoContents, modules: Modules = Depends(get_modules)) -> ApiResponse:
    logger.info(f"upsert_todo: {payload!r}")
    try:
        view = modules.todo_use_case.upsert_todo(payload.to_view(id))
    except (UseCaseError, RepositoryError) as e:
        logger.error(f"{e!r}")
        raise AppError(str(e)) from e
    logger.info(f"created or updated todo {view.id}")
    return _todo_envelope(view)


# PUBLIC_INTERFACE
@router.delete(
    "/{id}",
    response_model=ApiResponse,
    summary="Delete Todo",
    description="Delete a Todo item by ID and return the deleted item.",
    responses={200: {"description": "Todo item deleted successfully"}},
)
def delete_todo(id: str, modules: Modules = Depends(get_modules)) -> ApiResponse:
    logger.info(f"delete_todo: id={id}")
    try:
        view = modules.todo_use_case.delete_todo(id)
    except (UseCaseError, RepositoryError) as e:
        logger.error(f"Unexpected error: {e!r}")
        raise AppError(str(e)) from e
    if view is None:
        logger.error("todo is not found.")
        raise AppError("data not found")
    logger.info(f"Deleted todo `{view.id}`.")
    return _todo_envelope(view)
