"""
Environment variable management with .env file support.

The mover is configured entirely through the environment (the task
definition sets it in production); a local .env file is loaded when
present so the CLI can be pointed at a development stack.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from upload_mover.core.errors import MissingConfigurationError


class EnvManager:
    """
    Manages environment variables for the mover.

    Example:
        >>> env = EnvManager()
        >>> env.load()  # Loads .env if exists
        >>> bucket = env.get("UPLOAD_BUCKET", required=True)
    """

    def __init__(self, project_root: Path | str | None = None, auto_load: bool = True):
        """
        Initialize the environment manager.

        Args:
            project_root: Directory searched for a .env file
            auto_load: Automatically load .env file if found
        """
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self._loaded = False

        if auto_load:
            self.load()

    def load(self, env_file: str | Path | None = None, override: bool = False) -> bool:
        """
        Load environment variables from .env file.

        Args:
            env_file: Path to .env file (defaults to .env in project root)
            override: Whether to override existing environment variables

        Returns:
            True if .env file was loaded, False otherwise
        """
        if env_file is None:
            env_file = self.project_root / ".env"
        else:
            env_file = Path(env_file)

        if not env_file.exists():
            return False

        load_dotenv(env_file, override=override)
        self._loaded = True
        return True

    def get(self, key: str, default: str | None = None, required: bool = False) -> str | None:
        """
        Get an environment variable value.

        Args:
            key: Environment variable name
            default: Default value if not found
            required: If True, raises MissingConfigurationError when the
                variable is unset or empty and there is no default

        Returns:
            Environment variable value or default
        """
        value = os.environ.get(key)
        if value in (None, ""):
            value = default

        if required and not value:
            raise MissingConfigurationError(key)

        return value

    def get_first(self, *keys: str, default: str | None = None, required: bool = False) -> str | None:
        """Get the first set variable among several aliases."""
        for key in keys:
            value = os.environ.get(key)
            if value:
                return value
        if required and not default:
            raise MissingConfigurationError(keys[0])
        return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Get environment variable as boolean."""
        value = (self.get(key, "") or "").lower()
        if value in ("true", "1", "yes", "on"):
            return True
        if value in ("false", "0", "no", "off"):
            return False
        return default

    def get_int(self, key: str, default: int = 0) -> int:
        """Get environment variable as integer."""
        try:
            return int(self.get(key, str(default)))
        except (ValueError, TypeError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        """Get environment variable as float."""
        try:
            return float(self.get(key, str(default)))
        except (ValueError, TypeError):
            return default


# Global instance
_global_env: EnvManager | None = None


def get_env() -> EnvManager:
    """Get the global environment manager instance."""
    global _global_env
    if _global_env is None:
        _global_env = EnvManager()
    return _global_env
