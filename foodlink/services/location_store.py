"""Ephemeral viewer location in Redis (TTL, no history). Used as the origin of distance filters."""
import json
from typing import Any

from foodlink.config import settings
from foodlink.services.geo import Coordinates


def _key(user_id: int) -> str:
    return f"viewer:{user_id}:location"


async def set_viewer_location(redis: Any, user_id: int, coords: Coordinates) -> None:
    """Overwrite the viewer's last reported device coordinates. TTL on key."""
    payload = json.dumps({"lat": coords.lat, "lng": coords.lng})
    await redis.setex(_key(user_id), settings.VIEWER_LOCATION_TTL_SECONDS, payload)


async def get_viewer_location(redis: Any, user_id: int) -> Coordinates | None:
    raw = await redis.get(_key(user_id))
    if not raw:
        return None
    data = json.loads(raw)
    return Coordinates(float(data["lat"]), float(data["lng"]))
