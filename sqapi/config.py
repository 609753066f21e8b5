"""Configuration loading with priority: env > config file > preset > defaults."""

from __future__ import annotations

import getpass
import importlib.resources
import os
from pathlib import Path

import yaml
from loguru import logger
from pydantic import BaseModel

from sqapi.exceptions import InteractiveModeRequiredError

CONFIG_DIR = Path.home() / ".config" / "sqapi"
CONFIG_PATH = CONFIG_DIR / "config.yaml"

_SECTION = "squidle"


def is_interactive_disabled() -> bool:
    """Return True when SQAPI_NO_INTERACTIVE is set to 'true' (case-insensitive)."""
    return os.environ.get("SQAPI_NO_INTERACTIVE", "").lower() == "true"


def require_interactive(hint: str) -> None:
    """Raise if interactive prompts are disabled.

    Parameters
    ----------
    hint:
        Human-readable explanation of which env var or config key the
        caller should set instead of answering a prompt.

    """
    if is_interactive_disabled():
        raise InteractiveModeRequiredError(
            f"Interactive prompt required but SQAPI_NO_INTERACTIVE=true. {hint}"
        )


def get_config_path(config_path: Path | None = None) -> Path:
    """Return path to config file.

    Uses *config_path* if provided, otherwise SQAPI_CONFIG env var,
    otherwise default CONFIG_PATH.
    """
    if config_path is not None:
        return config_path
    path = os.environ.get("SQAPI_CONFIG")
    return Path(path) if path else CONFIG_PATH


def _parse_document(text: str, source: object) -> dict[str, object]:
    """Parse YAML *text* into its top-level mapping; anything else reads as empty."""
    data = yaml.safe_load(text) or {}
    if isinstance(data, dict):
        return data
    logger.warning(f"Invalid config format in {source}; expected mapping.")
    return {}


def _read_document(path: Path) -> dict[str, object]:
    if not path.is_file():
        return {}
    return _parse_document(path.read_text(encoding="utf-8"), path)


class SquidleConfig(BaseModel):
    """SQUIDLE+ connection settings.

    Also serves as the default credential provider: :meth:`get_token`
    returns the configured token or prompts for one.
    """

    host: str = ""
    token: str | None = None

    @classmethod
    def _from_section(cls, data: dict[str, object]) -> SquidleConfig:
        """Build from a raw YAML top-level dict (reads the ``squidle`` key)."""
        section = data.get(_SECTION, {})
        if not isinstance(section, dict):
            return cls()
        return cls(**{k: v for k, v in section.items() if k in cls.model_fields})

    @classmethod
    def from_preset(cls) -> SquidleConfig:
        """Defaults shipped in ``sqapi/presets/default.yaml``."""
        ref = importlib.resources.files("sqapi.presets").joinpath("default.yaml")
        return cls._from_section(_parse_document(ref.read_text(encoding="utf-8"), ref))

    @classmethod
    def from_file(cls, path: Path = CONFIG_PATH) -> SquidleConfig:
        """Load config from a YAML file.  Returns empty config if file is missing."""
        logger.trace(f"Loading config from {path}")
        return cls._from_section(_read_document(path))

    @classmethod
    def from_env(cls) -> SquidleConfig:
        """Build config from environment variables."""
        return cls(
            host=os.environ.get("SQUIDLE_HOST", ""),
            token=os.environ.get("SQUIDLE_API_TOKEN"),
        )

    def merge(self, override: SquidleConfig) -> SquidleConfig:
        """Return a new config where *override* values take priority over self.

        Only non-empty / non-None values from *override* win.
        """
        return SquidleConfig(
            host=override.host or self.host,
            token=override.token or self.token,
        )

    @classmethod
    def load(cls, config_path: Path | None = None) -> SquidleConfig:
        """Merge preset, file, and env: preset < file < env."""
        file_cfg = cls.from_file(get_config_path(config_path))
        return cls.from_preset().merge(file_cfg).merge(cls.from_env())

    def save_to_file(self, path: Path = CONFIG_PATH) -> Path:
        """Write the ``squidle`` section, preserving other top-level sections."""
        path.parent.mkdir(parents=True, exist_ok=True)
        existing = _read_document(path)

        section: dict[str, str] = {"host": self.host}
        if self.token:
            section["token"] = self.token
        existing[_SECTION] = section

        content = yaml.safe_dump(existing, default_flow_style=False, sort_keys=False)
        if not content.endswith("\n"):
            content += "\n"
        path.write_text(content, encoding="utf-8")
        logger.info(f"Config saved to {path}")
        return path

    def ensure_token(self) -> SquidleConfig:
        """Prompt interactively for a missing API token.  Returns updated copy."""
        if self.token:
            return self
        require_interactive("Set SQUIDLE_API_TOKEN or add a token to the config file.")
        token = getpass.getpass("Enter your API token: ").strip()
        return self.model_copy(update={"token": token})

    def get_token(self) -> str:
        """Return the API token, prompting for it when none is configured."""
        return self.ensure_token().token or ""
