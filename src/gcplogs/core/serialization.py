from typing import Any


def default_serializer(obj: Any) -> str:
    """
    Fallback for json.dumps so a log line is never dropped over one field.
    Objects with isoformat() (datetime, date) use it; anything else is str().
    """
    if hasattr(obj, "isoformat"):
        return str(obj.isoformat())
    return str(obj)
