"""Sharing a secret's latest value with another identity."""

from __future__ import annotations

import base64
import binascii
from datetime import datetime, timezone

from dotsecenv.secrets import _compute_hash, _normalize_key
from dotsecenv.session import (
    CommandError,
    ExitCode,
    Secret,
    SecretValue,
    Session,
    format_rfc3339_nano,
)

_DEFAULT_ALGORITHM_BITS = 256


def _vault_label(session: Session, index: int) -> str:
    return f"Vault {index + 1} ({session.vault_path_at(index)})"


def _share_in_vault(
    session: Session, secret_key: str, target_fingerprint: str, index: int, silent: bool
) -> bool:
    """Re-encrypt the latest value to include ``target_fingerprint``; return whether it did."""
    fp = session.require_fingerprint("secret share")
    resolver = session.resolver
    out = session.stdout

    secret = resolver.secret_from_vault(index, secret_key)
    if secret is None:
        if not silent:
            out.write(f"{_vault_label(session, index)}: skipped, secret not found in vault\n")
            return False
        raise CommandError(f"secret not found in vault: {secret_key}", ExitCode.VAULT_ERROR)

    manager = resolver.manager(index)
    if manager is None or not manager.can_identity_access_secret(fp, secret_key):
        raise CommandError(
            f"access denied: you do not have access to secret: {secret_key}",
            ExitCode.ACCESS_DENIED,
        )

    current = secret.latest_value()
    if current is None:
        raise CommandError(f"secret has no values: {secret_key}", ExitCode.VAULT_ERROR)

    if current.is_available_to(target_fingerprint):
        if not silent:
            out.write(f"{_vault_label(session, index)}: skipped, already shared\n")
        return False

    if resolver.identity_by_fingerprint(target_fingerprint) is None:
        raise CommandError(f"identity not found: {target_fingerprint}", ExitCode.VAULT_ERROR)

    try:
        armored = base64.b64decode(current.value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CommandError(
            f"failed to decode encrypted value: {exc}", ExitCode.GENERAL_ERROR
        ) from exc
    try:
        plaintext = session.gpg.decrypt(armored, fp)
    except Exception as exc:
        raise CommandError(f"failed to decrypt secret: {exc}", ExitCode.GPG_ERROR) from exc

    recipients = sorted([*current.available_to, target_fingerprint])
    public_keys = []
    for recipient in recipients:
        identity = resolver.identity_by_fingerprint(recipient)
        if identity is None:
            raise CommandError(
                f"recipient identity not found: {recipient}", ExitCode.VAULT_ERROR
            )
        public_keys.append(identity.public_key)

    try:
        reencrypted = session.gpg.encrypt_to_recipients(plaintext, public_keys)
    except Exception as exc:
        raise CommandError(f"failed to encrypt secret: {exc}", ExitCode.GENERAL_ERROR) from exc

    encoded = base64.b64encode(reencrypted.encode("utf-8")).decode("ascii")
    now = datetime.now(timezone.utc)
    metadata = (
        f"value:{format_rfc3339_nano(now)}:{secret_key}:{','.join(recipients)}:{fp}:{encoded}"
    )
    signer = resolver.identity_by_fingerprint(fp)
    bits = signer.algorithm_bits if signer is not None else _DEFAULT_ALGORITHM_BITS
    value_hash = _compute_hash(metadata.encode("utf-8"), bits)
    try:
        signature = session.gpg.sign_data(fp, value_hash.encode("utf-8"))
    except Exception as exc:
        raise CommandError(f"failed to sign secret value: {exc}", ExitCode.GENERAL_ERROR) from exc

    new_value = SecretValue(
        value=encoded,
        available_to=recipients,
        added_at=now,
        hash=value_hash,
        signature=signature,
        signed_by=fp,
    )
    try:
        resolver.add_secret(Secret(key=secret_key, values=[new_value]), index)
    except Exception as exc:
        raise CommandError(f"failed to add shared value: {exc}", ExitCode.VAULT_ERROR) from exc

    if not silent:
        out.write(
            f"{_vault_label(session, index)}: shared secret '{secret_key}' "
            f"with {target_fingerprint}\n"
        )
    return True


def secret_share(
    session: Session, secret_key: str, target_fingerprint: str, vault_index: int
) -> bool:
    """Share a secret in one vault; a negative index picks the vault holding the secret.

    Returns whether a new value was written.
    """
    _normalize_key(secret_key)
    if vault_index < 0:
        vault_index = session.resolver.find_secret_vault_index(secret_key)
        if vault_index < 0:
            raise CommandError(f"secret not found: {secret_key}", ExitCode.VAULT_ERROR)
    return _share_in_vault(session, secret_key, target_fingerprint, vault_index, False)


def secret_share_all(session: Session, secret_key: str, target_fingerprint: str) -> int:
    """Share a secret in every vault that holds it; return how many vaults were updated."""
    _normalize_key(secret_key)
    resolver = session.resolver
    count = resolver.vault_count()
    if count == 0:
        raise CommandError("no vaults configured", ExitCode.VAULT_ERROR)

    target = resolver.identity_by_fingerprint(target_fingerprint)
    if target is None:
        raise CommandError(f"identity not found: {target_fingerprint}", ExitCode.VAULT_ERROR)

    out = session.stdout
    out.write(f"Sharing secret '{secret_key}' with: {target.uid} {target_fingerprint}\n")

    shared = skipped = failed = 0
    for index in range(count):
        label = _vault_label(session, index)
        secret = resolver.secret_from_vault(index, secret_key)
        if secret is None:
            out.write(f"{label}: skipped, secret not found in vault\n")
            skipped += 1
            continue
        latest = secret.latest_value()
        if latest is not None and latest.is_available_to(target_fingerprint):
            out.write(f"{label}: skipped, already shared\n")
            skipped += 1
            continue
        try:
            _share_in_vault(session, secret_key, target_fingerprint, index, True)
        except CommandError as exc:
            out.write(f"{label}: skipped, {exc.message}\n")
            failed += 1
            continue
        out.write(f"{label}: shared secret '{secret_key}' with {target_fingerprint}\n")
        shared += 1

    if shared == 0 and failed > 0 and skipped == 0:
        raise CommandError("failed to share secret in any vault", ExitCode.VAULT_ERROR)
    return shared