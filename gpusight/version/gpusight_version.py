"""Version of the gpusight package and fingerprint of its sources."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import date
from functools import cache
from pathlib import Path

PACKAGE_DIR = Path(__file__).resolve().parent.parent


@dataclass(frozen=True)
class Version:
    """Release number plus the release date."""

    major: int
    minor: int
    patch: int
    released: date

    @classmethod
    def parse(cls, text: str, released: date) -> Version:
        """Build a Version from ``"MAJOR.MINOR.PATCH"``.

        Raises:
            ValueError: If ``text`` does not have three integer parts.
        """
        parts = text.strip().split(".")
        if len(parts) != 3 or not all(part.isdigit() for part in parts):
            raise ValueError(f"Not a MAJOR.MINOR.PATCH version: {text!r}")
        major, minor, patch = (int(part) for part in parts)
        return cls(major, minor, patch, released)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def semver(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def describe(self) -> str:
        """One line with the release date and the short source fingerprint."""
        return f"{self} ({self.released.isoformat()}, src {source_fingerprint()[:8]})"


@cache
def source_fingerprint() -> str:
    """SHA-256 over the relative path and bytes of every module in the package.

    Distinguishes an edited checkout from the released sources.
    """
    hasher = hashlib.sha256()
    for path in sorted(PACKAGE_DIR.rglob("*.py")):
        if "__pycache__" in path.parts:
            continue
        hasher.update(path.relative_to(PACKAGE_DIR).as_posix().encode())
        hasher.update(path.read_bytes())
    return hasher.hexdigest()


GPUSIGHT_VERSION = Version.parse("0.3.0", released=date(2026, 10, 12))
