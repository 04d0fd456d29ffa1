from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class DependencyRecord:
    """A vendored dependency and the license file found for it."""

    name: str
    license_path: Optional[Path] = None
