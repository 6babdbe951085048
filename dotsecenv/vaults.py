"""Vault listing and defragmentation commands."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

from dotsecenv.session import (
    CommandError,
    ExitCode,
    FragmentationStats,
    Session,
    VaultEntry,
    VaultManager,
    expand_path,
)


@dataclass
class VaultListing:
    """The secret keys held by one loaded vault."""

    position: int
    vault: str
    secrets: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"position": self.position, "vault": self.vault, "secrets": list(self.secrets)}


@dataclass
class DefragReport:
    """Fragmentation figures for a vault, and whether it was defragmented."""

    vault: str
    total_entries: int
    total_lines: int
    fragmentation_ratio: float
    recommend_defrag: bool
    reason: str
    defragmented: bool = False

    @classmethod
    def from_stats(
        cls, vault: str, stats: FragmentationStats, defragmented: bool
    ) -> DefragReport:
        return cls(
            vault=vault,
            total_entries=stats.total_entries,
            total_lines=stats.total_lines,
            fragmentation_ratio=stats.fragmentation_ratio,
            recommend_defrag=stats.recommend_defrag,
            reason=stats.reason,
            defragmented=defragmented,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "vault": self.vault,
            "total_entries": self.total_entries,
            "total_lines": self.total_lines,
            "fragmentation_ratio": self.fragmentation_ratio,
            "recommend_defrag": self.recommend_defrag,
            "reason": self.reason,
        }
        if self.defragmented:
            data["defragmented"] = True
        return data


def _matching_manager(session: Session, index: int, entry: VaultEntry) -> VaultManager | None:
    manager = session.resolver.manager(index)
    if manager is not None and os.path.abspath(entry.path) != os.path.abspath(manager.path):
        return None
    return manager


def vault_list(session: Session, json_output: bool) -> list[VaultListing]:
    """Print every configured vault with its sorted secret keys; return the loaded ones."""
    loaded = [
        (position, entry, _matching_manager(session, position - 1, entry))
        for position, entry in enumerate(session.resolver.entries, start=1)
    ]
    listings = [
        VaultListing(position, entry.path, sorted(secret.key for secret in manager.secrets))
        for position, entry, manager in loaded
        if manager is not None
    ]

    if json_output:
        session.write_json([listing.to_dict() for listing in listings] or None)
        return listings

    out = session.stdout
    for position, entry, manager in loaded:
        if position > 1:
            out.write("\n")
        if manager is None:
            out.write(f"Vault {position} ({entry.path}): Failed to load\n")
            continue
        keys = sorted(secret.key for secret in manager.secrets)
        if not keys:
            out.write(f"Vault {position} ({entry.path}):\n  (no secrets)\n")
            continue
        out.write(f"Vault {position} ({entry.path}):\n")
        for key in keys:
            out.write(f"  - {key}\n")
    return listings


def _target_index(session: Session, vault_path: str, from_index: int) -> int:
    entries = session.resolver.entries
    paths = session.resolver.vault_paths()
    if vault_path:
        index = session.find_loaded_vault_index(vault_path)
        if index is None:
            raise CommandError(
                f"vault path '{expand_path(vault_path)}' not found in config",
                ExitCode.VAULT_ERROR,
            )
        return index
    if from_index != 0:
        if not 0 < from_index <= len(entries):
            raise CommandError(
                f"-v index must be between 1 and {len(entries)}", ExitCode.GENERAL_ERROR
            )
        return from_index - 1
    if not paths:
        raise CommandError("no vaults configured", ExitCode.VAULT_ERROR)
    if len(paths) == 1:
        return 0
    assert session.chooser is not None
    return session.chooser(paths, "Select vault to defragment:")


def vault_defrag(
    session: Session,
    dry_run: bool,
    json_output: bool,
    skip_confirm: bool,
    vault_path: str,
    from_index: int,
) -> DefragReport:
    """Show a vault's fragmentation and defragment it when advised and confirmed."""
    index = _target_index(session, vault_path, from_index)
    entry = session.resolver.entries[index]
    manager = session.resolver.manager(index)
    if manager is None:
        raise CommandError(f"failed to load vault: {entry.path}", ExitCode.VAULT_ERROR)

    try:
        stats = manager.fragmentation_stats()
    except Exception as exc:
        raise CommandError(f"failed to get stats: {exc}", ExitCode.VAULT_ERROR) from exc

    out = session.stdout
    if not json_output:
        out.write(f"Vault {index + 1} ({entry.path}):\n")
        out.write(
            f"  Entries: {stats.total_entries}, Lines: {stats.total_lines}, "
            f"Fragmentation: {stats.fragmentation_ratio * 100:.1f}%\n"
        )
        if stats.recommend_defrag:
            out.write("  Status: defragmentation recommended\n")
        else:
            out.write(f"  Status: {stats.reason}\n")

    unchanged = DefragReport.from_stats(entry.path, stats, False)
    if dry_run or not stats.recommend_defrag:
        if json_output:
            session.write_json(unchanged.to_dict())
        return unchanged

    if not skip_confirm:
        out.write("\n")
        assert session.confirmer is not None
        if not session.confirmer("Proceed with defragmentation?"):
            out.write("Defragmentation cancelled.\n")
            if json_output:
                session.write_json(unchanged.to_dict())
            return unchanged

    try:
        new_stats = manager.defragment()
    except Exception as exc:
        raise CommandError(f"defragmentation failed: {exc}", ExitCode.VAULT_ERROR) from exc

    report = DefragReport.from_stats(entry.path, new_stats, True)
    if json_output:
        session.write_json(report.to_dict())
    else:
        out.write(
            f"\nVault {index + 1} ({entry.path}): defragmented "
            f"({stats.fragmentation_ratio * 100:.1f}% -> "
            f"{new_stats.fragmentation_ratio * 100:.1f}%)\n"
        )
    return report