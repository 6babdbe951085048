import io
import json

import pytest

from dotsecenv.config import Config
from dotsecenv.session import (
    CommandError,
    ExitCode,
    FragmentationStats,
    Secret,
    Session,
    VaultEntry,
)
from dotsecenv.vaults import DefragReport, vault_defrag, vault_list

BEFORE = FragmentationStats(
    total_entries=4, total_lines=8, fragmentation_ratio=0.5, recommend_defrag=True, reason=""
)
AFTER = FragmentationStats(
    total_entries=4, total_lines=5, fragmentation_ratio=0.0, recommend_defrag=False, reason="ok"
)
CLEAN = FragmentationStats(
    total_entries=2, total_lines=3, fragmentation_ratio=0.0, recommend_defrag=False,
    reason="vault is compact",
)


class FakeManager:
    def __init__(self, path, keys=(), stats=BEFORE, after=AFTER):
        self.path = path
        self.secrets = [Secret(key=k) for k in keys]
        self.identities = []
        self._stats = stats
        self._after = after
        self.defragmented = 0

    def fragmentation_stats(self):
        return self._stats

    def defragment(self):
        self.defragmented += 1
        return self._after


class FakeResolver:
    def __init__(self, paths, managers):
        self.entries = [VaultEntry(p) for p in paths]
        self._managers = managers

    def vault_paths(self):
        return [e.path for e in self.entries]

    def manager(self, index):
        return self._managers.get(index)


def make_session(resolver, chooser=None, confirmer=None):
    return Session(
        resolver=resolver,
        gpg=None,
        config=Config(),
        stdin=io.StringIO(),
        stdout=io.StringIO(),
        stderr=io.StringIO(),
        chooser=chooser,
        confirmer=confirmer,
    )


def test_vault_list_text():
    resolver = FakeResolver(
        ["/v1/vault", "/v2/vault"], {0: FakeManager("/v1/vault", ["B_KEY", "A_KEY"])}
    )
    session = make_session(resolver)
    listings = vault_list(session, False)
    out = session.stdout.getvalue()
    assert "Vault 1 (/v1/vault):\n  - A_KEY\n  - B_KEY\n" in out
    assert "Vault 2 (/v2/vault): Failed to load\n" in out
    assert [l.position for l in listings] == [1]


def test_vault_list_json():
    resolver = FakeResolver(
        ["/v1/vault", "/v2/vault"], {0: FakeManager("/v1/vault", ["B_KEY", "A_KEY"])}
    )
    session = make_session(resolver)
    vault_list(session, True)
    assert json.loads(session.stdout.getvalue()) == [
        {"position": 1, "vault": "/v1/vault", "secrets": ["A_KEY", "B_KEY"]}
    ]


def test_vault_list_empty_vault():
    session = make_session(FakeResolver(["/v1/vault"], {0: FakeManager("/v1/vault")}))
    vault_list(session, False)
    assert "(no secrets)" in session.stdout.getvalue()


def test_vault_list_path_mismatch_counts_as_failed():
    resolver = FakeResolver(["/v1/vault"], {0: FakeManager("/other/vault", ["K"])})
    session = make_session(resolver)
    assert vault_list(session, False) == []
    assert "Failed to load" in session.stdout.getvalue()


def test_vault_list_json_nothing_loaded():
    session = make_session(FakeResolver(["/v1/vault"], {}))
    vault_list(session, True)
    assert json.loads(session.stdout.getvalue()) is None


def test_defrag_dry_run_does_not_modify():
    manager = FakeManager("/v1/vault")
    session = make_session(FakeResolver(["/v1/vault"], {0: manager}))
    report = vault_defrag(session, True, False, False, "", 0)
    assert manager.defragmented == 0
    assert report.defragmented is False
    assert "Fragmentation: 50.0%" in session.stdout.getvalue()
    assert "defragmentation recommended" in session.stdout.getvalue()


def test_defrag_with_skip_confirm_json():
    manager = FakeManager("/v1/vault")
    session = make_session(FakeResolver(["/v1/vault"], {0: manager}))
    report = vault_defrag(session, False, True, True, "", 0)
    assert manager.defragmented == 1
    data = json.loads(session.stdout.getvalue())
    assert data["defragmented"] is True
    assert data["total_lines"] == AFTER.total_lines
    assert report.fragmentation_ratio == AFTER.fragmentation_ratio


def test_defrag_cancelled():
    manager = FakeManager("/v1/vault")
    questions = []

    def confirmer(question):
        questions.append(question)
        return False

    session = make_session(FakeResolver(["/v1/vault"], {0: manager}), confirmer=confirmer)
    report = vault_defrag(session, False, False, False, "", 0)
    assert manager.defragmented == 0
    assert questions == ["Proceed with defragmentation?"]
    assert "Defragmentation cancelled." in session.stdout.getvalue()
    assert report.defragmented is False


def test_defrag_not_needed_reports_reason():
    manager = FakeManager("/v1/vault", stats=CLEAN)
    session = make_session(FakeResolver(["/v1/vault"], {0: manager}))
    vault_defrag(session, False, False, True, "", 0)
    assert manager.defragmented == 0
    assert "Status: vault is compact" in session.stdout.getvalue()


def test_defrag_index_out_of_range():
    session = make_session(FakeResolver(["/v1/vault"], {0: FakeManager("/v1/vault")}))
    with pytest.raises(CommandError) as info:
        vault_defrag(session, True, False, False, "", 5)
    assert info.value.exit_code is ExitCode.GENERAL_ERROR


def test_defrag_unknown_path():
    session = make_session(FakeResolver(["/v1/vault"], {0: FakeManager("/v1/vault")}))
    with pytest.raises(CommandError) as info:
        vault_defrag(session, True, False, False, "/nowhere/vault", 0)
    assert info.value.exit_code is ExitCode.VAULT_ERROR


def test_defrag_no_vaults():
    session = make_session(FakeResolver([], {}))
    with pytest.raises(CommandError) as info:
        vault_defrag(session, True, False, False, "", 0)
    assert info.value.message == "no vaults configured"


def test_defrag_multiple_vaults_uses_chooser():
    first = FakeManager("/v1/vault")
    second = FakeManager("/v2/vault")
    seen = []

    def chooser(paths, prompt):
        seen.append(list(paths))
        return 1

    session = make_session(
        FakeResolver(["/v1/vault", "/v2/vault"], {0: first, 1: second}), chooser=chooser
    )
    report = vault_defrag(session, False, False, True, "", 0)
    assert seen == [["/v1/vault", "/v2/vault"]]
    assert second.defragmented == 1 and first.defragmented == 0
    assert report.vault == "/v2/vault"


def test_defrag_missing_manager():
    session = make_session(FakeResolver(["/v1/vault"], {}))
    with pytest.raises(CommandError) as info:
        vault_defrag(session, True, False, False, "", 1)
    assert info.value.exit_code is ExitCode.VAULT_ERROR


def test_report_omits_defragmented_when_false():
    report = DefragReport.from_stats("/v1/vault", CLEAN, False)
    assert "defragmented" not in report.to_dict()
    assert DefragReport.from_stats("/v1/vault", CLEAN, True).to_dict()["defragmented"] is True