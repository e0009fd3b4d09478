"""
config.py — Runtime Configuration for the Order Service

All settings come from environment variables so that the same image can run
locally, in CI and in containers. Defaults target a local SQLite database and
a broker on localhost with event publishing switched off.
"""

import os


def _flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


def _csv(name: str, default: str) -> frozenset:
    return frozenset(part.strip() for part in os.environ.get(name, default).split(",") if part.strip())


# Database
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./orders.db")
SQL_ECHO = _flag("SQL_ECHO")

# Message broker (order events)
RABBITMQ_HOST = os.environ.get("RABBITMQ_HOST", "localhost")
RABBITMQ_USER = os.environ.get("RABBITMQ_USER", "guest")
RABBITMQ_PASSWORD = os.environ.get("RABBITMQ_PASSWORD", "guest")
ORDER_EVENTS_ENABLED = _flag("ORDER_EVENTS_ENABLED")
ORDER_EVENTS_QUEUE = os.environ.get("ORDER_EVENTS_QUEUE", "orders.placed")

# Role claims issued by the upstream auth gateway
ORDERING_ROLES = _csv("ORDERING_ROLES", "Distributor,FieldExecutive,SalesManager")
ADMIN_ROLES = _csv("ADMIN_ROLES", "Admin")

# Logging
LOG_FILE = os.environ.get("LOG_FILE", "order_service.log")
