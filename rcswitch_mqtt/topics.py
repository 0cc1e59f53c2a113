"""Topic naming helpers shared by both translation directions."""

from __future__ import annotations

from typing import Iterable, List, Optional


def build_topic(prefix: str, name: str) -> str:
    return f"{prefix}{name}"


def strip_prefix(topic: str, prefix: str) -> Optional[str]:
    """Return the part of ``topic`` after ``prefix``, or None when it does not match."""

    if not topic.startswith(prefix):
        return None
    return topic[len(prefix):]


def subscription_topics(prefix: str, names: Iterable[str]) -> List[str]:
    return [build_topic(prefix, name) for name in names]
