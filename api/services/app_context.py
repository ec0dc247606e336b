"""
Application context for Friends.

Per-installation preferences (theme colour, selected extraction model,
auto-accept switch) persisted as a small JSON file. One AppContext is
created at startup, stored on app.state and passed explicitly to the
components that need it.
"""
import json
import logging
import os
import shutil
import tempfile
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, StrictBool, StringConstraints, ValidationError

from config.settings import settings

logger = logging.getLogger(__name__)

DEFAULT_THEME_COLOR = "#6366f1"

ThemeColor = Annotated[str, StringConstraints(pattern=r"^#[0-9a-fA-F]{6}$")]


class StoredPreferences(BaseModel):
    """Shape of the preferences file. Each field is checked on its own."""
    model_config = ConfigDict(extra="ignore")

    theme_color: Optional[ThemeColor] = None
    extraction_model: Optional[Annotated[str, StringConstraints(min_length=1)]] = None
    auto_accept_enabled: Optional[StrictBool] = None


@dataclass
class AppContext:
    """User preferences shared across the app."""
    theme_color: str = DEFAULT_THEME_COLOR
    extraction_model: str = ""
    auto_accept_enabled: bool = False
    path: Optional[Path] = None

    def __post_init__(self):
        if not self.extraction_model:
            self.extraction_model = settings.extraction_model

    def to_dict(self) -> dict:
        data = asdict(self)
        data.pop("path")
        return data

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "AppContext":
        """
        Load preferences, falling back to defaults.

        A missing or corrupt file yields the defaults; unknown keys are ignored.
        """
        path = Path(path or settings.preferences_path)
        if not path.exists():
            return cls(path=path)

        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read preferences from {path}: {e}")
            return cls(path=path)

        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed preferences file {path}")
            return cls(path=path)

        stored = {}
        for name in StoredPreferences.model_fields:
            if data.get(name) is None:
                continue
            try:
                stored[name] = getattr(StoredPreferences.model_validate({name: data[name]}), name)
            except ValidationError:
                logger.warning(f"Ignoring invalid preference {name}={data[name]!r} in {path}")
        return cls(path=path, **stored)

    def save(self) -> None:
        """Persist preferences with an atomic write (temp file + rename)."""
        path = Path(self.path or settings.preferences_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        temp_fd, temp_path = tempfile.mkstemp(suffix=".json", dir=path.parent)
        try:
            with os.fdopen(temp_fd, "w") as f:
                json.dump(self.to_dict(), f, indent=2)
            shutil.move(temp_path, path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
        logger.info(f"Saved preferences to {path}")

    def update(self, **changes) -> "AppContext":
        """Apply known preference changes and save."""
        for key, value in changes.items():
            if key == "path" or key not in {f.name for f in fields(self)}:
                raise ValueError(f"Unknown preference: {key}")
            setattr(self, key, value)
        self.save()
        return self
