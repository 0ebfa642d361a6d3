"""Metrics, reporting and notification engine for carledger."""

from __future__ import annotations

from . import criteria, entities, infra, mail, metrics, notifications, reporting

__all__ = [
    "criteria",
    "entities",
    "infra",
    "mail",
    "metrics",
    "notifications",
    "reporting",
]
