"""
Keygate Cache - JSON value serializer.
"""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger("keygate.cache.serializers")


class JsonCacheSerializer:
    """
    JSON serializer, safe and readable from any Redis client.

    Falls back to ``str()`` for non-serializable types (datetimes end up as
    their ISO form).
    """

    def serialize(self, value: Any) -> bytes:
        try:
            return json.dumps(value, default=str, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning(f"JSON serialization failed: {e}")
            raise

    def deserialize(self, data: bytes) -> Any:
        try:
            return json.loads(data.decode("utf-8") if isinstance(data, bytes) else data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"JSON deserialization failed: {e}")
            raise
