# Overview: JSON response envelope shared by every blueprint.

from __future__ import annotations

from math import ceil
from typing import Any

from flask import jsonify


def success_response(
    data: Any = None,
    *,
    message: str | None = None,
    status: int = 200,
    pagination: dict | None = None,
):
    body: dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    if pagination is not None:
        body["pagination"] = pagination
    return jsonify(body), status


def error_response(message: str, status: int = 400, *, errors: list | None = None, **extra):
    body: dict[str, Any] = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    body.update(extra)
    return jsonify(body), status


def pagination_meta(*, page: int, limit: int, total: int) -> dict:
    return {
        "current": page,
        "pages": ceil(total / limit) if limit else 0,
        "total": total,
    }
