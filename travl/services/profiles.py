"""
User Profiles - Profile records that keep a copy of each confirmed booking.
Stored as one JSON list (no schema versioning), or in memory when no path is set.
"""
import json
import logging
from pathlib import Path
from typing import Optional, Union

from pydantic import Field

from ..config import settings
from ..errors import TravlError
from ..models.base import CamelModel

logger = logging.getLogger(__name__)


class UserProfile(CamelModel):
    """A registered traveler."""
    email: str
    first_name: str = ""
    last_name: str = ""
    bookings: list[dict] = Field(default_factory=list)


class UserProfileStore:
    """Profile records keyed by email."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        path = path if path is not None else settings.profiles_path
        self.path = Path(path) if path else None
        self._users: dict[str, UserProfile] = {}
        self._load()

    def _load(self):
        if self.path is None or not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.error(f"Unreadable profile file {self.path}: {e}")
            return
        for item in raw if isinstance(raw, list) else []:
            profile = UserProfile.model_validate(item)
            self._users[profile.email] = profile

    def save(self):
        """Write all profiles back to the JSON file."""
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = [profile.model_dump(mode="json", by_alias=True) for profile in self._users.values()]
        self.path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")

    def register(self, email: str, first_name: str = "", last_name: str = "") -> UserProfile:
        if email in self._users:
            raise TravlError("An account with this email already exists.")
        profile = UserProfile(email=email, first_name=first_name, last_name=last_name)
        self._users[email] = profile
        self.save()
        return profile

    def get(self, email: str) -> Optional[UserProfile]:
        return self._users.get(email)

    def append_booking(self, email: str, snapshot: dict) -> UserProfile:
        """Append a booking snapshot to the user's profile and persist it."""
        profile = self._users.get(email)
        if profile is None:
            raise TravlError(f"No profile for {email}")
        profile.bookings.append(snapshot)
        self.save()
        return profile

    def bookings_for(self, email: str) -> list[dict]:
        profile = self._users.get(email)
        return list(profile.bookings) if profile else []
