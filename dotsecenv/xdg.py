"""XDG base-directory paths for the config and vault files."""

from __future__ import annotations

import os
from dataclasses import dataclass

SYSTEM_VAULT_PATH = "/var/lib/dotsecenv/vault"
LOCAL_VAULT_PATH = ".dotsecenv/vault"


@dataclass(frozen=True)
class Paths:
    """XDG config and data home directories."""

    config_home: str = ""
    data_home: str = ""

    def config_path(self) -> str:
        """Return the path of the config file."""
        return os.path.join(self.config_home, "dotsecenv", "config")

    def vault_path(self) -> str:
        """Return the path of the user's vault file."""
        return os.path.join(self.data_home, "dotsecenv", "vault")

    def ensure_dirs(self) -> None:
        """Create the config and data directories with mode 0700."""
        for directory in (
            os.path.join(self.config_home, "dotsecenv"),
            os.path.join(self.data_home, "dotsecenv"),
        ):
            os.makedirs(directory, mode=0o700, exist_ok=True)

    def default_vault_paths(self, is_suid: bool) -> list[str]:
        """Return default vault paths; the local and home vaults are left out when SUID."""
        paths = []
        if not is_suid:
            paths.append(LOCAL_VAULT_PATH)
            paths.append(self.vault_path())
        paths.append(SYSTEM_VAULT_PATH)
        return paths


def new_paths() -> Paths:
    """Return paths from XDG_CONFIG_HOME and XDG_DATA_HOME, falling back to the defaults."""
    home = os.path.expanduser("~")
    if home == "~":
        raise RuntimeError("cannot determine the home directory")
    config_home = os.environ.get("XDG_CONFIG_HOME") or os.path.join(home, ".config")
    data_home = os.environ.get("XDG_DATA_HOME") or os.path.join(home, ".local", "share")
    return Paths(config_home=config_home, data_home=data_home)