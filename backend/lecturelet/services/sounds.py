"""Notification sound preference to transport channel mapping.

Android delivers sound through pre-created notification channels, iOS by
bundled file name. Both are resolved here once per delivery.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SoundPreference(str, Enum):
    DEFAULT = "default"
    R1 = "r1"
    R2 = "r2"
    R3 = "r3"
    NONE = "none"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SoundPreference":
        """Read a stored preference; accepts "r1.wav" style values, unknown -> DEFAULT."""
        if not value or not isinstance(value, str):
            return cls.DEFAULT
        cleaned = value.strip().lower()
        if cleaned.endswith(".wav"):
            cleaned = cleaned[:-4]
        try:
            return cls(cleaned)
        except ValueError:
            return cls.DEFAULT


@dataclass(frozen=True)
class SoundChannel:
    channel_id: str
    sound_file: Optional[str]  # None = silent

    @property
    def is_silent(self) -> bool:
        return self.sound_file is None


_CHANNELS = {
    SoundPreference.DEFAULT: SoundChannel("default", "default"),
    SoundPreference.NONE: SoundChannel("default_silent", None),
    SoundPreference.R1: SoundChannel("lecturelet_r1_channel", "r1.wav"),
    SoundPreference.R2: SoundChannel("lecturelet_r2_channel", "r2.wav"),
    SoundPreference.R3: SoundChannel("lecturelet_r3_channel", "r3.wav"),
}


def resolve_sound(preference) -> SoundChannel:
    """Map a preference (enum or stored string) to its channel and sound file."""
    if not isinstance(preference, SoundPreference):
        preference = SoundPreference.parse(preference)
    return _CHANNELS[preference]
