import os
import stat

from dotsecenv.xdg import Paths, new_paths


def test_new_paths_defaults(monkeypatch, tmp_path):
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    monkeypatch.delenv("XDG_DATA_HOME", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))

    paths = new_paths()

    assert paths.config_home == os.path.join(str(tmp_path), ".config")
    assert paths.data_home == os.path.join(str(tmp_path), ".local", "share")


def test_new_paths_with_env_vars(monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", "/tmp/custom/config")
    monkeypatch.setenv("XDG_DATA_HOME", "/tmp/custom/data")

    paths = new_paths()

    assert paths.config_home == "/tmp/custom/config"
    assert paths.data_home == "/tmp/custom/data"


def test_path_helpers():
    p = Paths(config_home="/config", data_home="/data")
    assert p.config_path() == os.path.join("/config", "dotsecenv", "config")
    assert p.vault_path() == os.path.join("/data", "dotsecenv", "vault")


def test_ensure_dirs(tmp_path):
    p = Paths(
        config_home=str(tmp_path / "config"),
        data_home=str(tmp_path / "data"),
    )
    p.ensure_dirs()
    p.ensure_dirs()

    for directory in (
        os.path.join(p.config_home, "dotsecenv"),
        os.path.join(p.data_home, "dotsecenv"),
    ):
        info = os.stat(directory)
        assert stat.S_ISDIR(info.st_mode)
        assert info.st_mode & 0o700 == 0o700


def test_default_vault_paths_normal():
    p = Paths(data_home="/data")
    assert p.default_vault_paths(False) == [
        ".dotsecenv/vault",
        os.path.join("/data", "dotsecenv", "vault"),
        "/var/lib/dotsecenv/vault",
    ]


def test_default_vault_paths_suid():
    p = Paths(data_home="/data")
    paths = p.default_vault_paths(True)
    assert paths == ["/var/lib/dotsecenv/vault"]
    assert os.path.join("/data", "dotsecenv", "vault") not in paths