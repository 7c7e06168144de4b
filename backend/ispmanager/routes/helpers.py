"""
Request parsing and pagination shared by the API blueprints
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from flask import request

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def missing_fields(data: Dict[str, Any], fields: Iterable[str]) -> List[str]:
    return [field for field in fields if data.get(field) in (None, '')]


def as_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {'1', 'true', 'yes', 'y', 'on'}


def as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def as_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_datetime(value: Any) -> Optional[datetime]:
    """Accept ISO dates (``2024-05-01``) and datetimes, with or without ``Z``."""
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value
    raw = str(value).strip()
    if raw.endswith('Z'):
        raw = raw[:-1]
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    # stored naive in UTC
    return parsed.replace(tzinfo=None)


def normalize_choice(value: Any, allowed: Iterable[str]) -> Optional[str]:
    candidate = str(value or '').strip().upper()
    return candidate if candidate in allowed else None


def pagination_args() -> Tuple[int, int]:
    page = max(1, as_int(request.args.get('page'), 1))
    limit = as_int(request.args.get('limit'), DEFAULT_PAGE_SIZE)
    limit = min(max(1, limit), MAX_PAGE_SIZE)
    return page, limit


def paginate(query, key: str, serializer=None) -> Dict[str, Any]:
    page, limit = pagination_args()
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    serializer = serializer or (lambda item: item.to_dict())
    return {
        key: [serializer(item) for item in items],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total,
            'pages': (total + limit - 1) // limit,
        },
    }
