"""Structured logging helpers (PII-safe)."""

import logging
from typing import Any

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the API process or the CLI."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def build_log_context(
    *,
    collection: str | None = None,
    step: str | None = None,
    index: str | None = None,
    application_id: str | None = None,
    actor_id: str | None = None,
    action: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict (ids and names only)."""
    context: dict[str, Any] = {}
    if collection:
        context["collection"] = collection
    if step:
        context["step"] = step
    if index:
        context["index"] = index
    if application_id:
        context["application_id"] = application_id
    if actor_id:
        context["actor_id"] = actor_id
    if action:
        context["action"] = action
    return context
