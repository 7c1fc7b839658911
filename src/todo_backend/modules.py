from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Request

from .repositories import Database, InMemoryDatabase, RepositoriesModule, in_memory_repositories
from .settings import Settings
from .usecases import HealthCheckUseCase, TodoUseCase, UserUseCase

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Modules:
    """Fully wired dependency graph shared by every request of one application."""

    settings: Settings
    database: Database
    repositories: RepositoriesModule
    user_use_case: UserUseCase
    todo_use_case: TodoUseCase
    health_check_use_case: HealthCheckUseCase


# PUBLIC_INTERFACE
def build_modules(settings: Settings) -> Modules:
    """
    Build the dependency graph for the configured persistence backend.
    - memory: InMemoryDatabase with in-memory repositories
    - postgres: PostgresDatabase with SQL repositories (requires psycopg2)
    """
    database: Database
    if settings.persistence_backend == "postgres":
        from .db import PostgresDatabase, postgres_repositories

        database = PostgresDatabase(settings.database_url, settings.database_max_connections)
        repositories = postgres_repositories()
    else:
        database = InMemoryDatabase()
        repositories = in_memory_repositories()
    logger.info(f"Persistence backend: {settings.persistence_backend}")

    return Modules(
        settings=settings,
        database=database,
        repositories=repositories,
        user_use_case=UserUseCase(database, repositories, bcrypt_rounds=settings.bcrypt_rounds),
        todo_use_case=TodoUseCase(database, repositories),
        health_check_use_case=HealthCheckUseCase(database),
    )


# PUBLIC_INTERFACE
def get_modules(request: Request) -> Modules:
    """FastAPI dependency returning the graph built by ``create_app``."""
    return request.app.state.modules
