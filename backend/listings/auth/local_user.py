"""
Minimal local login: build the user record the client keeps in its own storage.
Nothing here is persisted server-side.
"""
from datetime import datetime, timezone
from typing import NamedTuple
from urllib.parse import quote

AVATAR_URL_TEMPLATE = "https://api.dicebear.com/7.x/avataaars/svg?seed={seed}"


class LocalUserRecord(NamedTuple):
    user_id: str
    name: str
    email: str
    image: str
    created_at: str


def avatar_url(name: str) -> str:
    return AVATAR_URL_TEMPLATE.format(seed=quote(name, safe=""))


def build_local_user(name: str, email: str, now: datetime | None = None) -> LocalUserRecord:
    if now is None:
        now = datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return LocalUserRecord(
        user_id=str(int(now.timestamp() * 1000)),
        name=name,
        email=email,
        image=avatar_url(name),
        created_at=now.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
    )
