"""Storing and retrieving secret values in the configured vaults."""

from __future__ import annotations

import base64
import binascii
import hashlib
import os
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, TextIO

from dotsecenv.session import (
    CommandError,
    ExitCode,
    Secret,
    SecretValue,
    Session,
    expand_path,
    format_rfc3339_nano,
)


@dataclass(frozen=True)
class SecretValueRecord:
    """A decrypted secret value with the time it was added and the vault holding it."""

    added_at: datetime
    value: str
    vault: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "added_at": format_rfc3339_nano(self.added_at),
            "value": self.value,
        }
        if self.vault:
            data["vault"] = self.vault
        return data


def read_secret(stream: TextIO) -> str:
    """Return the first line of ``stream`` without its line ending."""
    line = stream.readline()
    if not line:
        raise EOFError("no input provided")
    return line.rstrip("\n").rstrip("\r")


def _normalize_key(secret_key: str) -> str:
    key = secret_key.strip()
    if not key:
        raise CommandError("invalid secret key: key must not be empty", ExitCode.VALIDATION_ERROR)
    if any(char.isspace() for char in key):
        raise CommandError(
            f"invalid secret key '{secret_key}': key must not contain whitespace",
            ExitCode.VALIDATION_ERROR,
        )
    return key


def _compute_hash(data: bytes, algorithm_bits: int) -> str:
    if algorithm_bits >= 512:
        return hashlib.sha512(data).hexdigest()
    if algorithm_bits >= 384:
        return hashlib.sha384(data).hexdigest()
    return hashlib.sha256(data).hexdigest()


def _format_rfc3339(moment: datetime) -> str:
    return format_rfc3339_nano(moment.replace(microsecond=0))


def _entry_path(session: Session, index: int) -> str:
    entries = session.resolver.entries
    return entries[index].path if 0 <= index < len(entries) else ""


def _put_target(session: Session, vault_path: str, from_index: int) -> int:
    if vault_path:
        expanded = expand_path(vault_path)
        try:
            os.stat(expanded)
        except FileNotFoundError:
            raise CommandError(
                f"vault file does not exist: {expanded}", ExitCode.VAULT_ERROR
            ) from None
        except OSError as exc:
            raise CommandError(f"cannot access vault file: {exc}", ExitCode.VAULT_ERROR) from exc
        try:
            os.close(os.open(expanded, os.O_WRONLY))
        except OSError:
            raise CommandError(
                f"vault file is not writable: {expanded}", ExitCode.VAULT_ERROR
            ) from None
        index = session.find_loaded_vault_index(vault_path)
        if index is None:
            raise CommandError(
                f"vault path '{expanded}' is not loaded in current session",
                ExitCode.GENERAL_ERROR,
            )
        return index

    if from_index != 0:
        entries = session.resolver.entries
        if from_index <= 0:
            raise CommandError(
                "-v index must be a positive integer (N >= 1)", ExitCode.GENERAL_ERROR
            )
        if from_index > len(entries):
            session.stderr.write("Configured vaults:\n")
            for number, entry in enumerate(entries, start=1):
                session.stderr.write(f"  {number}: {entry.path}\n")
            raise CommandError(
                f"-v index {from_index} exceeds number of configured vaults ({len(entries)})",
                ExitCode.GENERAL_ERROR,
            )
        return from_index - 1

    paths = session.resolver.vault_paths()
    if not paths:
        raise CommandError("no vaults configured", ExitCode.VAULT_ERROR)
    if len(paths) == 1:
        return 0
    assert session.chooser is not None
    return session.chooser(paths, "Multiple vaults configured. Select target vault:")


def secret_put(session: Session, secret_key: str, vault_path: str, from_index: int) -> Secret:
    """Read a value from stdin, encrypt it to the active identity and store it."""
    key = _normalize_key(secret_key)
    fp = session.require_fingerprint("secret put")
    index = _put_target(session, vault_path, from_index)

    identity = session.resolver.identity_by_fingerprint(fp)
    if identity is None:
        raise CommandError(
            f"identity not found in vault\nrun 'dotsecenv vault identity add {fp}' first",
            ExitCode.ACCESS_DENIED,
        )

    existing = session.resolver.secret_from_vault(index, key)
    latest = existing.latest_value() if existing is not None else None
    if latest is not None and not latest.is_available_to(fp):
        raise CommandError(
            f"access denied: you do not have access to the latest value of secret '{key}'",
            ExitCode.ACCESS_DENIED,
        )

    if session.stdin.isatty():
        session.stderr.write("Enter secret value (input will be redacted): ")
        session.stderr.flush()
    try:
        plaintext = read_secret(session.stdin)
    except (OSError, EOFError) as exc:
        raise CommandError(f"failed to read secret: {exc}", ExitCode.GENERAL_ERROR) from exc

    try:
        armored = session.gpg.encrypt_to_recipients(plaintext.encode("utf-8"), [identity.public_key])
    except Exception as exc:
        raise CommandError(f"failed to encrypt secret: {exc}", ExitCode.GENERAL_ERROR) from exc

    encoded = base64.b64encode(armored.encode("utf-8")).decode("ascii")
    now = datetime.now(timezone.utc)
    stamp = format_rfc3339_nano(now)

    secret_hash = _compute_hash(f"secret:{stamp}:{key}:{fp}".encode(), identity.algorithm_bits)
    try:
        secret_sig = session.gpg.sign_data(fp, secret_hash.encode())
    except Exception as exc:
        raise CommandError(f"failed to sign secret: {exc}", ExitCode.GENERAL_ERROR) from exc

    value_hash = _compute_hash(
        f"value:{stamp}:{key}:{fp}:{fp}:{encoded}".encode(), identity.algorithm_bits
    )
    try:
        value_sig = session.gpg.sign_data(fp, value_hash.encode())
    except Exception as exc:
        raise CommandError(f"failed to sign secret value: {exc}", ExitCode.GENERAL_ERROR) from exc

    secret = Secret(
        key=key,
        values=[
            SecretValue(
                value=encoded,
                available_to=[fp],
                added_at=now,
                hash=value_hash,
                signature=value_sig,
                signed_by=fp,
            )
        ],
        added_at=now,
        hash=secret_hash,
        signature=secret_sig,
        signed_by=fp,
    )

    try:
        session.resolver.add_secret(secret, index)
    except Exception as exc:
        raise CommandError(f"failed to add secret: {exc}", ExitCode.VAULT_ERROR) from exc
    try:
        session.resolver.save_vault(index)
    except Exception as exc:
        raise CommandError(f"failed to save vault: {exc}", ExitCode.VAULT_ERROR) from exc

    session.stdout.write(f"Secret '{key}' stored successfully\n")
    return secret


def _decrypt_history(
    session: Session, items: Iterable[tuple[SecretValue, str]], fp: str
) -> Iterator[SecretValueRecord]:
    """Decrypt each accessible value, warning on failures unless strict mode is on."""
    for value, vault in items:
        if not value.is_available_to(fp):
            continue
        try:
            armored = base64.b64decode(value.value, validate=True)
        except (binascii.Error, ValueError) as exc:
            if session.strict:
                raise CommandError(
                    f"strict mode: failed to decode value from {value.added_at}: {exc}",
                    ExitCode.GENERAL_ERROR,
                ) from exc
            session.warn(f"failed to decode value from {value.added_at}: {exc}")
            continue
        try:
            plaintext = session.gpg.decrypt(armored, fp)
        except Exception as exc:
            if session.strict:
                raise CommandError(
                    f"strict mode: failed to decrypt value from {value.added_at}: {exc}",
                    ExitCode.GPG_ERROR,
                ) from exc
            session.warn(f"failed to decrypt value from {value.added_at}: {exc}")
            continue
        yield SecretValueRecord(
            value.added_at, plaintext.decode("utf-8", errors="replace"), vault
        )


def _emit(
    session: Session, records: list[SecretValueRecord], all_values: bool, json_output: bool
) -> None:
    if json_output:
        if all_values:
            session.write_json([record.to_dict() for record in records] or None)
        else:
            session.write_json(records[0].to_dict())
        return
    if all_values:
        for record in records:
            session.stdout.write(
                f"{_format_rfc3339(record.added_at)} ({record.vault}): {record.value}\n"
            )
    elif records:
        session.stdout.write(f"{records[0].value}\n")


def _get_from_index(
    session: Session, key: str, index: int, all_values: bool, json_output: bool, fp: str
) -> list[SecretValueRecord]:
    secret = session.resolver.secret_from_vault(index, key)
    if secret is None:
        raise CommandError(f"secret '{key}' not found in vault", ExitCode.VAULT_ERROR)
    latest = secret.latest_value()
    if latest is None:
        raise CommandError(f"secret '{key}' has no values", ExitCode.VAULT_ERROR)

    vault = _entry_path(session, index)
    if all_values:
        records = list(
            _decrypt_history(session, ((value, vault) for value in reversed(secret.values)), fp)
        )
    else:
        manager = session.resolver.manager(index)
        if manager is None:
            path = _entry_path(session, index) or "unknown"
            raise CommandError(f"Vault {index + 1} ({path}): not found", ExitCode.VAULT_ERROR)
        value = manager.get_accessible_secret_value(fp, key, session.strict)
        if value is None:
            raise CommandError(
                f"access denied: you do not have access to secret '{key}'",
                ExitCode.ACCESS_DENIED,
            )
        if not session.strict and value.added_at != latest.added_at:
            session.warn(
                f"returning older value for '{key}' (access to latest value is revoked)"
            )
        plaintext = session.decode_and_decrypt(value.value, fp)
        records = [SecretValueRecord(value.added_at, plaintext, vault)]

    if not records:
        raise CommandError(f"no accessible values for secret '{key}'", ExitCode.ACCESS_DENIED)
    _emit(session, records, all_values, json_output)
    return records


def _get_last(
    session: Session, key: str, json_output: bool, fp: str
) -> list[SecretValueRecord]:
    newest: SecretValue | None = None
    newest_vault = ""
    for index, entry in enumerate(session.resolver.entries):
        secret = session.resolver.secret_from_vault(index, key)
        if secret is None:
            continue
        for value in secret.values:
            if not value.is_available_to(fp):
                continue
            if newest is None or value.added_at > newest.added_at:
                newest = value
                newest_vault = entry.path

    if newest is None:
        raise CommandError(f"secret '{key}' not found in any vault", ExitCode.VAULT_ERROR)

    plaintext = session.decode_and_decrypt(newest.value, fp)
    record = SecretValueRecord(newest.added_at, plaintext, newest_vault)
    if json_output:
        session.write_json(record.to_dict())
    else:
        session.stdout.write(f"{plaintext}\n")
    return [record]


def _get_target_index(session: Session, vault_path: str, from_index: int) -> int | None:
    if vault_path:
        index = session.find_loaded_vault_index(vault_path)
        if index is None:
            expanded = expand_path(vault_path)
            if not os.path.exists(expanded):
                raise CommandError(
                    f"vault file does not exist: {expanded}", ExitCode.VAULT_ERROR
                )
            raise CommandError(
                f"vault path '{expanded}' not found in resolver", ExitCode.VAULT_ERROR
            )
        return index
    if from_index != 0:
        count = len(session.resolver.entries)
        if not 0 < from_index <= count:
            raise CommandError(
                f"-v index must be a positive integer between 1 and {count}",
                ExitCode.GENERAL_ERROR,
            )
        return from_index - 1
    return None


def secret_get(
    session: Session,
    secret_key: str,
    all_values: bool,
    last: bool,
    json_output: bool,
    vault_path: str,
    from_index: int,
) -> list[SecretValueRecord]:
    """Decrypt and print a secret's value, or all its values, from the vaults."""
    _normalize_key(secret_key)
    key = secret_key
    fp = session.require_fingerprint("secret get")

    if last and (vault_path or from_index != 0):
        paths = session.resolver.vault_paths()
        if vault_path:
            target = vault_path
        elif 0 < from_index <= len(paths):
            target = f"vault {from_index} ({paths[from_index - 1]})"
        else:
            target = f"vault {from_index}"
        if session.strict:
            raise CommandError(
                "strict mode: --last and -v cannot be used together; omit -v to search "
                f"all vaults or remove --last to use {target}",
                ExitCode.GENERAL_ERROR,
            )
        session.warn(
            f"--last is ignored when -v is specified; returning latest value from {target}. "
            "Omit -v to search all vaults."
        )
        last = False

    index = _get_target_index(session, vault_path, from_index)
    if index is not None:
        return _get_from_index(session, key, index, all_values, json_output, fp)
    if last:
        return _get_last(session, key, json_output, fp)

    if all_values:
        found: list[tuple[SecretValue, str]] = []
        for position, entry in enumerate(session.resolver.entries):
            secret = session.resolver.secret_from_vault(position, key)
            if secret is not None:
                found.extend((value, entry.path) for value in secret.values)
        if not found:
            raise CommandError(f"secret '{key}' not found in any vault", ExitCode.VAULT_ERROR)
        found.sort(key=lambda item: item[0].added_at, reverse=True)
        records = list(_decrypt_history(session, found, fp))
        _emit(session, records, True, json_output)
        return records

    try:
        value = session.resolver.accessible_secret_from_any_vault(key, fp, session.strict)
    except Exception as exc:
        raise CommandError(
            f"access denied: secret '{key}' not found or not accessible",
            ExitCode.ACCESS_DENIED,
        ) from exc
    if value is None:
        raise CommandError(
            f"access denied: secret '{key}' not found or not accessible",
            ExitCode.ACCESS_DENIED,
        )

    if not session.strict:
        latest = session.resolver.secret_from_any_vault(key)
        if latest is not None and latest.added_at != value.added_at:
            session.warn(
                f"returning older value for '{key}' (access to latest value is revoked)"
            )

    vault = _entry_path(session, session.resolver.find_secret_vault_index(key))
    plaintext = session.decode_and_decrypt(value.value, fp)
    records = [SecretValueRecord(value.added_at, plaintext, vault)]
    _emit(session, records, False, json_output)
    return records