from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId


def utcnow() -> datetime:
    # BSON dates are naive UTC with millisecond precision; match what reads return
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def stringify_ids(doc: Dict[str, Any], *fields: str) -> Dict[str, Any]:
    for field in ("_id",) + fields:
        value = doc.get(field)
        if isinstance(value, ObjectId):
            doc[field] = str(value)
    return doc
