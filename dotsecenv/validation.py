"""Checking the configuration and the configured vault files."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotsecenv.algorithms import get_algorithm_details
from dotsecenv.session import (
    CommandError,
    ExitCode,
    Identity,
    Session,
    VaultEntry,
    VaultManager,
)


@dataclass(frozen=True)
class Issue:
    """A problem found during validation; non-fatal issues are warnings."""

    path: str
    message: str
    fatal: bool = True


def _identity_algorithm(session: Session, identity: Identity) -> str:
    try:
        info = session.gpg.public_key_info(identity.fingerprint)
        return str(info.algorithm)
    except Exception:
        if identity.curve:
            return f"{identity.algorithm} {identity.curve}"
        return identity.algorithm


def _check_identities(session: Session, manager: VaultManager) -> None:
    out = session.stdout
    out.write("\n    === Identity Validation ===\n")
    if not manager.identities:
        return
    out.write("    Identity Details:\n")
    for identity in manager.identities:
        algo = _identity_algorithm(session, identity)
        name, bits = get_algorithm_details(algo)
        if bits > 0:
            out.write(f"      - {identity.uid} ({name} {bits} bits)")
        else:
            out.write(f"      - {identity.uid} ({name})")
        if session.config.is_algorithm_allowed(algo, bits):
            out.write(" ✓\n")
        else:
            out.write(" ✗ (not allowed by requirements)\n")
            raise CommandError(
                f"algorithm not allowed: {algo}", ExitCode.ALGORITHM_NOT_ALLOWED
            )


def _check_secrets(session: Session, manager: VaultManager, path: str) -> list[Issue]:
    out = session.stdout
    out.write("\n    === Secret Validation ===\n")
    secrets = list(manager.secrets)
    if not secrets:
        return []
    out.write("    Secret Details:\n")
    by_key = {secret.key: secret for secret in secrets}
    issues = []
    for key in sorted(secret.key for secret in secrets):
        secret = by_key[key]
        out.write(f"      - {secret.key}: {len(secret.values)} value(s)")
        if secret.signature:
            out.write(" ✓")
        else:
            out.write(" ✗ (missing signature)")
            issues.append(Issue(f"{path}:{key}", "missing signature"))
        out.write("\n")
        for number, value in enumerate(secret.values, start=1):
            if value.signature:
                stamp = value.added_at.strftime("%Y-%m-%d %H:%M:%S")
                out.write(f"        [{number}] added at {stamp} ✓\n")
            else:
                out.write(f"        [{number}] ✗ Missing signature\n")
                issues.append(Issue(f"{path}:{key}[{number}]", "missing signature"))
    return issues


def _check_vault(session: Session, index: int, entry: VaultEntry) -> list[Issue]:
    out = session.stdout
    path = os.path.abspath(entry.path)
    out.write(f"  Vault {index + 1}: {path}\n")

    try:
        size = os.stat(path).st_size
    except OSError:
        out.write("    Status: ⚠ File not found (warning)\n")
        return [Issue(path, "file not found", fatal=False)]

    if size == 0:
        out.write("    Status: ✗ Vault file is empty (invalid vault structure)\n")
        return [Issue(path, "vault file is empty")]

    manager = session.resolver.manager(index)
    if manager is None:
        load_error = session.resolver.load_error(index)
        message = str(load_error) if load_error is not None else "unknown error"
        out.write(f"    Status: ✗ Failed to load: {message}\n")
        return [Issue(path, f"failed to load: {message}")]

    out.write("    Status: ✓ Valid vault file\n")
    out.write(f"    Identities: {len(manager.identities)}\n")
    out.write(f"    Secrets: {len(manager.secrets)}\n")

    _check_identities(session, manager)
    issues = _check_secrets(session, manager, path)
    out.write("\n")
    return issues


def validate(session: Session, fix: bool = False) -> list[Issue]:
    """Report on the config file and every configured vault.

    Raises CommandError when a check fails; otherwise returns the warnings found.
    ``fix`` is reserved; nothing is repaired.
    """
    out = session.stdout
    out.write("=== DotSecEnv Configuration Validation ===\n\n")

    config_path = os.path.abspath(session.config_path)
    out.write(f"Configuration file: {config_path}\n")
    try:
        os.stat(config_path)
    except OSError:
        raise CommandError(
            f"config file not found: {config_path}", ExitCode.CONFIG_ERROR
        ) from None
    out.write("  Status: ✓ Found\n\n")

    out.write("Approved Algorithms:\n")
    algorithms = session.config.approved_algorithms
    if not algorithms:
        out.write("  (No requirements defined)\n")
    for req in algorithms:
        out.write(f"  {req.algo}: minimum {req.min_bits} bits")
        if req.curves:
            out.write(f" (curves: {', '.join(req.curves)})")
        out.write(" ✓\n")
    out.write("\n")

    out.write("Vault Configuration:\n")
    entries = list(session.resolver.entries)
    issues: list[Issue] = []
    for index, entry in enumerate(entries):
        issues.extend(_check_vault(session, index, entry))
    if not entries:
        out.write("  (No vaults configured)\n\n")

    out.write("=== Validation Complete ===\n")
    if any(issue.fatal for issue in issues):
        out.write("Status: ✗ Validation failed - see errors above\n")
        raise CommandError("validation failed", ExitCode.VAULT_ERROR)
    out.write("Status: ✓ All checks passed\n")
    return issues