"""Backup client factory.

Resolves which database to back up and builds a client for it:

1. Direct mode: ``database_url`` given -> ``AsyncPostgresAdapter`` for it.
2. Profile mode: ``db.toml`` profile named explicitly, by the
   ``{env_prefix}DB_PROFILE`` env var, or by the ``.db-profile`` lock file.

Usage:
    from db_backup.factory import get_adapter

    client = await get_adapter(env_prefix="APP_")
    try:
        data = await generate_backup(client, config, "admin-1")
    finally:
        await client.close()
"""

import logging
import os
from pathlib import Path
from urllib.parse import quote

from db_backup.adapters.base import BackupClient
from db_backup.adapters.postgres import AsyncPostgresAdapter
from db_backup.config.loader import load_db_config
from db_backup.config.models import DatabaseProfile

logger = logging.getLogger(__name__)

# Profile lock file path
_PROFILE_LOCK_FILE = Path.cwd() / ".db-profile"


class ProfileNotFoundError(Exception):
    """Raised when no database profile is configured."""

    pass


# ============================================================================
# Profile resolution
# ============================================================================


def read_profile_lock() -> str | None:
    """Read profile name from lock file.

    Returns:
        Profile name if lock file exists, None otherwise
    """
    if _PROFILE_LOCK_FILE.exists():
        return _PROFILE_LOCK_FILE.read_text().strip() or None
    return None


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from env var or lock file.

    Priority:
    1. ``{env_prefix}DB_PROFILE`` env var
    2. .db-profile file in the working directory
    3. Raise ProfileNotFoundError

    Args:
        env_prefix: Prefix for the env var (``"APP_"`` reads ``APP_DB_PROFILE``)

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    env_profile = os.environ.get(f"{env_prefix}DB_PROFILE")
    if env_profile:
        return env_profile

    lock_profile = read_profile_lock()
    if lock_profile:
        return lock_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Set {env_prefix}DB_PROFILE=<name> or write the name to .db-profile"
    )


def get_active_profile(
    profile_name: str | None = None,
    env_prefix: str = "",
    config_path: Path | None = None,
) -> tuple[str, DatabaseProfile]:
    """Get profile name and configuration.

    Returns:
        Tuple of (profile_name, DatabaseProfile)

    Raises:
        ProfileNotFoundError: If no profile configured, or the name is not
            in db.toml
    """
    if profile_name is None:
        profile_name = get_active_profile_name(env_prefix)
    config = load_db_config(config_path)

    if profile_name not in config.profiles:
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in db.toml.\n"
            f"Available profiles: {', '.join(config.profiles.keys())}"
        )

    return profile_name, config.profiles[profile_name]


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Example:
        >>> resolve_url(DatabaseProfile(url="postgresql://u:[YOUR-PASSWORD]@h/db", db_password="p@ss"))
        'postgresql://u:p%40ss@h/db'
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


# ============================================================================
# Client factory
# ============================================================================


def _supabase_adapter(profile: DatabaseProfile, env_prefix: str) -> BackupClient:
    """Build a Supabase client for ``profile`` (requires the supabase extra)."""
    try:
        from db_backup.adapters.supabase import AsyncSupabaseAdapter
    except ImportError as e:
        raise ImportError(
            "Supabase profiles need the supabase extra: pip install db-backup[supabase]"
        ) from e

    key = profile.supabase_key or os.environ.get(f"{env_prefix}SUPABASE_KEY")
    if not key:
        raise ProfileNotFoundError(
            f"Supabase profile needs supabase_key in db.toml or {env_prefix}SUPABASE_KEY"
        )
    return AsyncSupabaseAdapter(url=profile.url, key=key)


async def get_adapter(
    profile_name: str | None = None,
    env_prefix: str = "",
    database_url: str | None = None,
    config_path: Path | None = None,
) -> BackupClient:
    """Create a backup client.

    A new client is created on every call; callers own it and must
    ``await client.close()``.

    Args:
        profile_name: Profile from db.toml (default: active profile)
        env_prefix: Prefix for env var lookup
        database_url: Direct connection URL; bypasses profiles entirely
        config_path: Path to db.toml (default: ./db.toml)

    Raises:
        ProfileNotFoundError: If no usable profile is configured
    """
    if database_url:
        return AsyncPostgresAdapter(database_url=database_url)

    name, profile = get_active_profile(profile_name, env_prefix, config_path)
    logger.debug("Using profile %s (%s)", name, profile.provider)

    if profile.provider == "supabase":
        return _supabase_adapter(profile, env_prefix)
    return AsyncPostgresAdapter(database_url=resolve_url(profile))
