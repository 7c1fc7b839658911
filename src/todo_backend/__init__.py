"""
Todo backend package.

Layers, outermost first: routers (HTTP controllers), usecases, models (domain),
and the persistence backends in repositories (in-memory) and db (PostgreSQL).
"""
