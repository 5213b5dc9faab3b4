"""
Engine configuration.

Values come from constructor arguments first, then environment variables.
load_settings() also reads a .env file (python-dotenv) so local runs and
deployments share one mechanism.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

from .diff.catalog_diff import DeletePolicy
from .errors import ConfigurationError
from .schema import DEFAULT_HISTORY_RETENTION, DEFAULT_MAX_FILE_SIZE_MB

logger = logging.getLogger(__name__)

_POLICY_NAMES = {
    "absence": DeletePolicy.ABSENCE_IMPLIES_DELETE,
    "absence_implies_delete": DeletePolicy.ABSENCE_IMPLIES_DELETE,
    "explicit": DeletePolicy.EXPLICIT_ONLY,
    "explicit_only": DeletePolicy.EXPLICIT_ONLY,
}


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings for parse, diff, apply and rollback.

    part_delete_policy decides whether parts missing from an upload are
    deleted (full-catalog replace) or only rows marked Eliminar are.
    Child sheets are explicit-only regardless.
    """
    part_delete_policy: DeletePolicy = DeletePolicy.ABSENCE_IMPLIES_DELETE
    max_file_size_mb: int = DEFAULT_MAX_FILE_SIZE_MB
    history_retention: int = DEFAULT_HISTORY_RETENTION
    imported_by: str = "import"

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


def parse_delete_policy(value: Union[str, DeletePolicy]) -> DeletePolicy:
    """
    Resolve a delete policy from its name.

    Raises:
        ConfigurationError: If the name is not a known policy
    """
    if isinstance(value, DeletePolicy):
        return value
    policy = _POLICY_NAMES.get(str(value).strip().lower())
    if policy is None:
        raise ConfigurationError(
            f"Unknown part delete policy '{value}'. "
            f"Expected one of: {', '.join(sorted(_POLICY_NAMES))}"
        )
    return policy


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def load_settings(env_file: Optional[Union[str, Path]] = None) -> Settings:
    """
    Build Settings from the environment.

    Args:
        env_file: Optional path to a .env file. When omitted, python-dotenv
                  searches for one from the working directory upwards.
                  Existing environment variables are never overridden.

    Returns:
        Settings instance

    Raises:
        ConfigurationError: If a variable holds an invalid value
    """
    if env_file is not None:
        load_dotenv(env_file)
    else:
        load_dotenv()

    settings = Settings(
        part_delete_policy=parse_delete_policy(
            os.getenv("CATALOG_PART_DELETE_POLICY", "absence")
        ),
        max_file_size_mb=_int_from_env("CATALOG_MAX_FILE_SIZE_MB", DEFAULT_MAX_FILE_SIZE_MB),
        history_retention=_int_from_env("CATALOG_HISTORY_RETENTION", DEFAULT_HISTORY_RETENTION),
        imported_by=os.getenv("CATALOG_IMPORTED_BY", "import"),
    )
    logger.info(
        f"Settings loaded: delete policy {settings.part_delete_policy.name}, "
        f"max file size {settings.max_file_size_mb} MB, "
        f"history retention {settings.history_retention}"
    )
    return settings
