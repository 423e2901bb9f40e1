"""Helpers for reading provider payloads whose shape varies between CLI and API versions."""


def first_field(obj, *keys):
    """Return the first non-empty value among *keys* in dict *obj*.

    The provider answers with camelCase or kebab-case keys depending on the
    tool version, so callers list every spelling they accept.
    """
    if not isinstance(obj, dict):
        return None
    for key in keys:
        value = obj.get(key)
        if value not in (None, ""):
            return value
    return None


def unwrap_data(response):
    """Strip the ``{"data": ...}`` envelope if present."""
    if isinstance(response, dict) and "data" in response:
        return response["data"]
    return response


def normalize_items(response) -> list:
    """Normalize a list response into a plain list.

    Accepts ``[...]``, ``{"data": [...]}``, ``{"data": {"items": [...]}}`` and
    ``{"items": [...]}``. Anything else yields an empty list.
    """
    if isinstance(response, list):
        return response
    if not isinstance(response, dict):
        return []
    data = response.get("data")
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and "items" in data:
        return data.get("items") or []
    items = response.get("items")
    if isinstance(items, list):
        return items
    return []
