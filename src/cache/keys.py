"""
Cache key generation.

Keys are built from a prefix plus every parameter that affects the cached
result, then normalized so the same logical request always maps to the
same key. Normalization is lossy on purpose: usernames are
case-insensitive on GitHub. Free-text filters such as locations and
languages must not be normalized; fold them in through hash_params.
"""

import hashlib
import json
import re
from typing import Any, Dict, Optional

KEY_DELIMITER = ":"

_DISALLOWED = re.compile(r"[^a-z0-9:_-]")


def normalize_key(raw: str) -> str:
    """Lowercase and replace anything outside [a-z0-9:_-] with '_'."""
    return _DISALLOWED.sub("_", raw.lower())


def _part(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_key(
    prefix: str,
    identifier: Any,
    suffix: Optional[Any] = None,
    *extra: Any,
) -> str:
    """
    Build a normalized cache key.

    Examples:
        build_key("user_profile", "Octocat")            -> "user_profile:octocat"
        build_key("leaderboard", "commits_all_time", "1_100")
                                                        -> "leaderboard:commits_all_time:1_100"
        build_key("trends", "90d", "commits", "daily", "berlin", "all")
                                                        -> "trends:90d:commits:daily:berlin:all"
    """
    parts = [_part(prefix), _part(identifier)]
    if suffix is not None and suffix != "":
        parts.append(_part(suffix))
    parts.extend(_part(p) for p in extra)
    return normalize_key(KEY_DELIMITER.join(parts))


def hash_params(params: Optional[Dict[str, Any]]) -> str:
    """Create a short stable hash of an option mapping."""
    param_str = json.dumps(params or {}, sort_keys=True, default=str)
    return hashlib.md5(param_str.encode()).hexdigest()[:12]
