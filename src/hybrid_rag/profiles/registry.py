"""Agent profile registry implementation."""

from pathlib import Path
from threading import Lock
from types import MappingProxyType
from typing import Iterable, Mapping

import yaml
from loguru import logger

from ..config import Config
from ..errors import InvalidProfileError, ProfileNotFound
from .defaults import GENERAL_PROFILE, PREDEFINED_PROFILE_IDS, PREDEFINED_PROFILES
from .models import AgentProfile


class ProfileRegistry:
    """
    Versioned, snapshot-swapped store of agent profiles.

    Features:
    - Lock-free reads: get() reads one immutable snapshot
    - Serialized writes: upsert()/remove() build a new snapshot under a lock
      and publish it with a single reference swap
    - Resilient lookups: unknown ids resolve to the default profile
    - YAML loading for operator-supplied profiles

    Readers therefore see either the old or the new profile map, never a mix.
    """

    def __init__(
        self,
        profiles: Iterable[AgentProfile] = PREDEFINED_PROFILES,
        default_profile_id: str | None = None,
    ):
        """
        Initialize registry with a set of profiles.

        Args:
            profiles: Initial profiles (defaults to the predefined catalogue)
            default_profile_id: Profile returned for unknown ids
                (defaults to Config.DEFAULT_PROFILE)
        """
        initial = {}
        for profile in profiles:
            profile.validate()
            initial[profile.profile_id] = profile

        self._write_lock = Lock()
        self._snapshot: Mapping[str, AgentProfile] = MappingProxyType(initial)
        self._version = 1
        self._default_profile_id = default_profile_id or Config.DEFAULT_PROFILE

        if self._default_profile_id not in initial:
            logger.warning(
                f"Default profile '{self._default_profile_id}' not registered; "
                f"falling back to '{GENERAL_PROFILE.profile_id}'"
            )

    @classmethod
    def from_yaml(cls, yaml_path: str, include_predefined: bool = True) -> "ProfileRegistry":
        """
        Load registry from YAML file.

        Expected structure:
            default_profile: general
            profiles:
              - profile_id: reviewer
                name: Code Review Agent
                context_window: {max_chunks: 8, max_tokens: 6000}

        Args:
            yaml_path: Path to profiles YAML file
            include_predefined: Seed the registry with the predefined catalogue
                (YAML entries with the same id replace them)

        Returns:
            Initialized ProfileRegistry instance

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            yaml.YAMLError: If YAML is malformed
            InvalidProfileError: If a profile entry is invalid
        """
        yaml_file = Path(yaml_path)
        if not yaml_file.exists():
            raise FileNotFoundError(f"Profiles YAML not found: {yaml_path}")

        with open(yaml_file) as f:
            data = yaml.safe_load(f) or {}

        # Validate YAML structure
        if not isinstance(data, dict):
            raise InvalidProfileError(
                f"Invalid YAML structure: expected dict, got {type(data).__name__}"
            )
        if "profiles" in data and not isinstance(data["profiles"], list):
            raise InvalidProfileError("'profiles' must be a list")

        profiles = {p.profile_id: p for p in PREDEFINED_PROFILES} if include_predefined else {}
        for entry in data.get("profiles", []):
            profile = AgentProfile.from_dict(entry)
            profiles[profile.profile_id] = profile

        registry = cls(profiles.values(), default_profile_id=data.get("default_profile"))
        logger.info(f"Loaded {len(profiles)} profiles from {yaml_path}")
        return registry

    @property
    def version(self) -> int:
        """Snapshot version, incremented on every successful write."""
        return self._version

    @property
    def default_profile_id(self) -> str:
        if self._default_profile_id in self._snapshot:
            return self._default_profile_id
        return GENERAL_PROFILE.profile_id

    def default_profile(self) -> AgentProfile:
        return self._snapshot.get(self.default_profile_id, GENERAL_PROFILE)

    def contains(self, profile_id: str | None) -> bool:
        return bool(profile_id) and profile_id in self._snapshot

    def lookup(self, profile_id: str) -> AgentProfile:
        """
        Strict lookup.

        Raises:
            ProfileNotFound: If profile_id is not registered
        """
        profile = self._snapshot.get(profile_id)
        if profile is None:
            raise ProfileNotFound(profile_id)
        return profile

    def get(self, profile_id: str | None) -> AgentProfile:
        """
        Get a profile, resolving unknown ids to the default profile.

        Args:
            profile_id: Profile identifier

        Returns:
            The registered profile, or the default profile if unknown
        """
        snapshot = self._snapshot
        profile = snapshot.get(profile_id) if profile_id else None
        if profile is None:
            logger.debug(
                f"{ProfileNotFound(str(profile_id))}; "
                f"using default profile '{self.default_profile_id}'"
            )
            return snapshot.get(self.default_profile_id, GENERAL_PROFILE)
        return profile

    def list_profiles(self) -> list[AgentProfile]:
        return sorted(self._snapshot.values(), key=lambda p: p.profile_id)

    def upsert(self, profile: AgentProfile) -> None:
        """
        Insert or replace a profile.

        The whole profile is replaced; there is no partial mutation.

        Raises:
            InvalidProfileError: If the profile fails validation
        """
        profile.validate()
        with self._write_lock:
            updated = dict(self._snapshot)
            updated[profile.profile_id] = profile
            self._publish(updated)
        logger.info(f"Profile '{profile.profile_id}' upserted (registry v{self._version})")

    def remove(self, profile_id: str) -> bool:
        """
        Remove a custom profile.

        Returns:
            True if removed, False if not registered

        Raises:
            InvalidProfileError: If profile_id is predefined or the default
        """
        if profile_id in PREDEFINED_PROFILE_IDS:
            raise InvalidProfileError(f"Cannot remove predefined profile '{profile_id}'")
        if profile_id == self._default_profile_id:
            raise InvalidProfileError(f"Cannot remove default profile '{profile_id}'")

        with self._write_lock:
            if profile_id not in self._snapshot:
                return False
            updated = dict(self._snapshot)
            del updated[profile_id]
            self._publish(updated)
        logger.info(f"Profile '{profile_id}' removed (registry v{self._version})")
        return True

    def _publish(self, profiles: dict[str, AgentProfile]) -> None:
        # Caller holds the write lock
        self._snapshot = MappingProxyType(profiles)
        self._version += 1

    def get_stats(self) -> dict:
        snapshot = self._snapshot
        capability_counts: dict[str, int] = {}
        for profile in snapshot.values():
            for capability in profile.capabilities:
                capability_counts[capability] = capability_counts.get(capability, 0) + 1
        return {
            "total_profiles": len(snapshot),
            "version": self._version,
            "default_profile": self.default_profile_id,
            "capability_counts": capability_counts,
        }
