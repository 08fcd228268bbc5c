"""JSON:API request envelope helpers shared by the routers."""

from typing import Any

from fastapi import HTTPException


def get_attributes(body: dict) -> dict[str, Any]:
    """Return ``body["data"]["attributes"]``.

    A missing ``attributes`` member reads as empty. Any other shape, including a
    ``data`` member that is not an object, is rejected with 422.
    """
    data = body.get("data")
    if not isinstance(data, dict):
        raise HTTPException(status_code=422, detail="'data' must be an object")
    attrs = data.get("attributes", {})
    if not isinstance(attrs, dict):
        raise HTTPException(status_code=422, detail="'data.attributes' must be an object")
    return attrs
