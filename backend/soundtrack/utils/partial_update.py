"""Helper for selective ("partial") updates.

Callers pass only the fields a client supplied; the resolver maps API
names to storage column names and refuses empty updates so no caller
ever issues a no-op UPDATE.
"""

from typing import Any, Dict, Mapping, Optional

from ..errors import InvalidArgument


def resolve_partial_update(data: Mapping[str, Any], aliases: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Translate `data` into an ordered `{column: value}` mapping.

    `aliases` maps external names to column names, e.g.
    `{"teacherId": "teacher_id"}`; keys without an alias are used
    verbatim. Values pass through untouched, the caller validates types.

    >>> resolve_partial_update({"name": "Ann", "skillLevelId": 2}, {"skillLevelId": "skill_level_id"})
    {'name': 'Ann', 'skill_level_id': 2}

    Raises `InvalidArgument` for an empty mapping, or when two keys
    resolve to the same column.
    """
    if not data:
        raise InvalidArgument("No data")
    aliases = aliases or {}
    values: Dict[str, Any] = {}
    for key, value in data.items():
        column = aliases.get(key, key)
        if column in values:
            raise InvalidArgument(f"'{column}' was supplied more than once")
        values[column] = value
    return values
