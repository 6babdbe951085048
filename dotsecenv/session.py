"""Shared state, data records and collaborator interfaces for the commands."""

from __future__ import annotations

import base64
import binascii
import enum
import functools
import json
import os
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol, TextIO

from dotsecenv.config import Config

_ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)


class ExitCode(enum.IntEnum):
    """Process exit codes reported by the commands."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    CONFIG_ERROR = 2
    VAULT_ERROR = 3
    GPG_ERROR = 4
    ACCESS_DENIED = 5
    ALGORITHM_NOT_ALLOWED = 6
    FINGERPRINT_REQUIRED = 7
    VALIDATION_ERROR = 8


class CommandError(Exception):
    """A command failure carrying the exit code it maps to."""

    def __init__(self, message: str, exit_code: int = ExitCode.GENERAL_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = ExitCode(exit_code)


@dataclass
class Identity:
    """A public identity registered in a vault."""

    fingerprint: str
    uid: str = ""
    algorithm: str = ""
    algorithm_bits: int = 0
    curve: str = ""
    public_key: str = ""
    added_at: datetime = _ZERO_TIME


@dataclass
class SecretValue:
    """One encrypted value of a secret and the fingerprints it is encrypted to."""

    value: str
    available_to: list[str] = field(default_factory=list)
    added_at: datetime = _ZERO_TIME
    hash: str = ""
    signature: str = ""
    signed_by: str = ""

    def is_available_to(self, fingerprint: str) -> bool:
        """Return whether ``fingerprint`` may decrypt this value."""
        return fingerprint in self.available_to


@dataclass
class Secret:
    """A named secret with its history of values, oldest first."""

    key: str
    values: list[SecretValue] = field(default_factory=list)
    added_at: datetime = _ZERO_TIME
    hash: str = ""
    signature: str = ""
    signed_by: str = ""

    def latest_value(self) -> SecretValue | None:
        """Return the most recently appended value, or None if there is none."""
        return self.values[-1] if self.values else None


@dataclass(frozen=True)
class VaultEntry:
    """A configured vault location."""

    path: str


@dataclass(frozen=True)
class FragmentationStats:
    """How fragmented a vault file is and whether compaction is advised."""

    total_entries: int
    total_lines: int
    fragmentation_ratio: float
    recommend_defrag: bool
    reason: str = ""


class VaultManager(Protocol):
    """An opened vault file."""

    @property
    def path(self) -> str: ...

    @property
    def identities(self) -> Sequence[Identity]: ...

    @property
    def secrets(self) -> Sequence[Secret]: ...

    def get_secret_by_key(self, key: str) -> Secret | None: ...

    def can_identity_access_secret(self, fingerprint: str, key: str) -> bool: ...

    def get_accessible_secret_value(
        self, fingerprint: str, key: str, strict: bool
    ) -> SecretValue | None: ...

    def fragmentation_stats(self) -> FragmentationStats: ...

    def defragment(self) -> FragmentationStats: ...


class VaultResolver(Protocol):
    """Resolves the configured vaults and lookups across them."""

    @property
    def entries(self) -> Sequence[VaultEntry]: ...

    def vault_paths(self) -> list[str]: ...

    def vault_count(self) -> int: ...

    def manager(self, index: int) -> VaultManager | None: ...

    def load_error(self, index: int) -> Exception | None: ...

    def identity_by_fingerprint(self, fingerprint: str) -> Identity | None: ...

    def secret_from_vault(self, index: int, key: str) -> Secret | None: ...

    def accessible_secret_from_any_vault(
        self, key: str, fingerprint: str, strict: bool
    ) -> SecretValue: ...

    def secret_from_any_vault(self, key: str) -> SecretValue | None: ...

    def find_secret_vault_index(self, key: str) -> int: ...

    def add_secret(self, secret: Secret, index: int) -> None: ...

    def save_vault(self, index: int) -> None: ...


class GpgClient(Protocol):
    """Encryption, decryption and signing through the user's keys."""

    def encrypt_to_recipients(self, plaintext: bytes, public_keys: Sequence[str]) -> str: ...

    def decrypt(self, ciphertext: bytes, fingerprint: str) -> bytes: ...

    def sign_data(self, fingerprint: str, data: bytes) -> str: ...

    def public_key_info(self, fingerprint: str) -> Any: ...


def expand_path(path: str) -> str:
    """Expand a leading ``~`` and environment variables in a vault path."""
    return os.path.expandvars(os.path.expanduser(path))


def format_rfc3339_nano(moment: datetime) -> str:
    """Format a timestamp as RFC 3339 with trimmed fractional seconds."""
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    if moment.microsecond:
        text += "." + f"{moment.microsecond:06d}".rstrip("0")
    offset = moment.utcoffset()
    if offset is None or offset == timedelta(0):
        return text + "Z"
    sign = "+" if offset > timedelta(0) else "-"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def _prompt_choice(
    options: Sequence[str], prompt: str, *, stdin: TextIO, out: TextIO
) -> int:
    out.write(prompt + "\n")
    for number, option in enumerate(options, start=1):
        out.write(f"  {number}: {option}\n")
    out.write(f"Enter choice [1-{len(options)}]: ")
    out.flush()
    line = stdin.readline()
    if not line:
        raise CommandError("no selection made", ExitCode.GENERAL_ERROR)
    answer = line.strip()
    try:
        choice = int(answer)
    except ValueError:
        raise CommandError(f"invalid selection: {answer}", ExitCode.GENERAL_ERROR) from None
    if not 1 <= choice <= len(options):
        raise CommandError(f"selection out of range: {choice}", ExitCode.GENERAL_ERROR)
    return choice - 1


def _prompt_confirm(question: str, *, stdin: TextIO, out: TextIO) -> bool:
    out.write(f"{question} [y/N]: ")
    out.flush()
    return stdin.readline().strip().lower() in {"y", "yes"}


@dataclass
class Session:
    """The state one command runs against: vaults, keys, config and streams."""

    resolver: VaultResolver
    gpg: GpgClient
    config: Config = field(default_factory=Config)
    config_path: str = ""
    fingerprint: str = ""
    stdin: TextIO = field(default_factory=lambda: sys.stdin)
    stdout: TextIO = field(default_factory=lambda: sys.stdout)
    stderr: TextIO = field(default_factory=lambda: sys.stderr)
    chooser: Callable[[Sequence[str], str], int] | None = None
    confirmer: Callable[[str], bool] | None = None

    def __post_init__(self) -> None:
        if self.chooser is None:
            self.chooser = functools.partial(_prompt_choice, stdin=self.stdin, out=self.stderr)
        if self.confirmer is None:
            self.confirmer = functools.partial(_prompt_confirm, stdin=self.stdin, out=self.stderr)

    @property
    def strict(self) -> bool:
        """Whether strict mode is on, turning certain warnings into errors."""
        return self.config.strict

    def warn(self, message: str) -> None:
        """Write a warning line to stderr."""
        self.stderr.write(f"warning: {message}\n")

    def require_fingerprint(self, command: str) -> str:
        """Return the active fingerprint or raise if none is set."""
        if not self.fingerprint:
            raise CommandError(
                f"fingerprint required for '{command}': set 'fingerprint' in the config",
                ExitCode.FINGERPRINT_REQUIRED,
            )
        return self.fingerprint

    def vault_path_at(self, index: int) -> str:
        """Return the loaded vault path at ``index``, or an empty string."""
        paths = self.resolver.vault_paths()
        return paths[index] if 0 <= index < len(paths) else ""

    def find_loaded_vault_index(self, path: str) -> int | None:
        """Return the index of the loaded vault matching ``path``, or None."""
        wanted = expand_path(path)
        for index, loaded in enumerate(self.resolver.vault_paths()):
            if expand_path(loaded) == wanted:
                return index
        return None

    def decode_and_decrypt(self, encoded: str, fingerprint: str) -> str:
        """Decode a base64 stored value and decrypt it with ``fingerprint``'s key."""
        try:
            armored = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CommandError(
                f"failed to decode encrypted value: {exc}", ExitCode.GENERAL_ERROR
            ) from exc
        try:
            plaintext = self.gpg.decrypt(armored, fingerprint)
        except Exception as exc:
            raise CommandError(f"failed to decrypt secret: {exc}", ExitCode.GPG_ERROR) from exc
        return plaintext.decode("utf-8", errors="replace")

    def write_json(self, payload: Any) -> None:
        """Write ``payload`` to stdout as indented JSON followed by a newline."""
        try:
            text = json.dumps(payload, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise CommandError(f"failed to encode json: {exc}", ExitCode.GENERAL_ERROR) from exc
        self.stdout.write(text + "\n")