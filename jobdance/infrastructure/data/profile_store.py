"""
Candidate profile loading.
"""
import os
import json
import logging
from typing import Optional

from ...interview.models import UserProfile

logger = logging.getLogger("profile_store")


class ProfileStore:
    """Reads the candidate profile from a JSON file."""

    def __init__(self, profile_path: Optional[str]):
        self.profile_path = profile_path

    def load(self) -> Optional[UserProfile]:
        """Return the profile, or None when missing or unreadable."""
        if not self.profile_path:
            return None
        if not os.path.exists(self.profile_path):
            logger.warning("Profile file not found: %s", self.profile_path)
            return None
        try:
            with open(self.profile_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Could not read profile %s: %s", self.profile_path, e)
            return None
        if not isinstance(data, dict):
            logger.error("Profile %s is not a JSON object", self.profile_path)
            return None

        profile = UserProfile.from_dict(data)
        logger.info("Loaded profile for %s", profile.full_name or "unnamed candidate")
        return profile
