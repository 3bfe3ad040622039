"""
MongoDB document serialization utilities
"""
from datetime import datetime, timezone
from typing import Any, Dict
from bson import ObjectId


def utcnow() -> datetime:
    """Timezone-aware current UTC time used for every stored timestamp."""
    return datetime.now(timezone.utc)


def convert_object_ids(doc: Any) -> Any:
    """
    Recursively convert ObjectId instances to strings in a document
    Useful for nested documents or complex structures

    Args:
        doc: Document that may contain ObjectIds at any level

    Returns:
        Document with all ObjectIds converted to strings
    """
    if isinstance(doc, dict):
        return {key: convert_object_ids(value) for key, value in doc.items()}
    elif isinstance(doc, list):
        return [convert_object_ids(item) for item in doc]
    elif isinstance(doc, ObjectId):
        return str(doc)
    else:
        return doc


def api_response(data: Any = None, message: str = "OK") -> Dict[str, Any]:
    """Wrap a payload in the `{success, message, data}` envelope."""
    return {"success": True, "message": message, "data": convert_object_ids(data)}
