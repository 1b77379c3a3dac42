from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy import and_, exists, or_
from memrag.models.memory import MemoryRecord, MemoryTag


def tag_value_str(value: Any) -> str:
    """String form of a front-matter tag value, as stored in the tags table."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass
class TagFilter:
    key: str
    value: Optional[str] = None
    check_value: bool = False

    @classmethod
    def parse(cls, text: str) -> "TagFilter":
        """Build a filter from ``key`` or ``key=value``."""
        key, sep, value = text.partition("=")
        if sep and value:
            return cls(key=key.strip(), value=value.strip(), check_value=True)
        return cls(key=key.strip())


def filters_from_mapping(tags: Dict[str, Any]) -> List[TagFilter]:
    """An empty value means 'has tag', anything else 'has tag with this value'."""
    filters = []
    for key, value in tags.items():
        text = tag_value_str(value)
        filters.append(TagFilter(key=key, value=text or None, check_value=bool(text)))
    return filters


def tag_condition(f: TagFilter):
    criteria = [MemoryTag.memory_id == MemoryRecord.id, MemoryTag.tag_name == f.key]
    if f.check_value and f.value:
        criteria.append(MemoryTag.tag_value == tag_value_str(f.value))
    return exists().where(*criteria)


def combine_tag_filters(filters: Sequence[TagFilter], require_all: bool):
    """AND or OR the per-filter EXISTS clauses. None when there is nothing to filter."""
    if not filters:
        return None
    conditions = [tag_condition(f) for f in filters]
    return and_(*conditions) if require_all else or_(*conditions)
