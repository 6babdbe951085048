import os

import pytest

from dotsecenv.config import (
    ApprovedAlgorithm,
    Config,
    ConfigError,
    default_config,
    get_fingerprint_from_env,
    load,
    parse_config,
    save,
)


def test_default_config_fips_minimums():
    cfg = default_config()
    assert cfg.approved_algorithms
    minimums = {"RSA": 2048, "ECC": 384, "EdDSA": 255}
    for alg in cfg.approved_algorithms:
        if alg.algo in minimums:
            assert alg.min_bits >= minimums[alg.algo]
    names = {alg.algo for alg in cfg.approved_algorithms}
    assert {"RSA", "ECC", "EdDSA"} <= names


def test_default_config_has_no_vault_entries():
    assert default_config().vault == []


@pytest.mark.parametrize(
    "algo, bits, allowed",
    [
        ("RSA", 4096, True),
        ("RSA", 3072, True),
        ("RSA", 2048, True),
        ("RSA", 1024, False),
        ("ECC P-521", 521, True),
        ("ECC P-384", 384, True),
        ("ECC P-256", 256, False),
        ("ECC Unknown", 256, False),
        ("EdDSA Ed25519", 255, True),
        ("EdDSA Ed448", 448, True),
        ("Unknown", 1024, False),
    ],
)
def test_is_algorithm_allowed(algo, bits, allowed):
    assert default_config().is_algorithm_allowed(algo, bits) is allowed


def test_is_algorithm_allowed_without_requirements():
    assert Config().is_algorithm_allowed("RSA", 4096) is False


def test_curve_family_without_curves_rejects():
    cfg = Config(approved_algorithms=[ApprovedAlgorithm(algo="ECC", min_bits=256)])
    assert cfg.is_algorithm_allowed("ECC P-384", 384) is False


def test_config_load_save(tmp_path):
    cfg_path = tmp_path / "config.yaml"
    cfg = default_config()
    cfg.fingerprint = "test-fingerprint"
    cfg.vault = ["/path/to/vault"]

    save(cfg_path, cfg)
    loaded = load(cfg_path)

    assert loaded.fingerprint == cfg.fingerprint
    assert loaded.vault == ["/path/to/vault"]
    assert loaded == cfg


def test_save_creates_private_file(tmp_path):
    cfg_path = tmp_path / "nested" / "config"
    save(cfg_path, default_config())
    assert cfg_path.is_file()
    assert os.stat(cfg_path).st_mode & 0o077 == 0


def test_to_dict_key_order_and_omissions():
    data = default_config().to_dict()
    assert list(data) == ["approved_algorithms", "vault", "strict"]
    assert data["approved_algorithms"][2] == {"algo": "RSA", "min_bits": 2048}


def test_unmarshal_yaml_error():
    bad_yaml = "\nvault:\n  nested: value\n"
    with pytest.raises(ConfigError) as excinfo:
        parse_config(bad_yaml)
    assert "invalid vault configuration" in str(excinfo.value)
    assert "on line 3" in str(excinfo.value)


def test_load_wraps_vault_error(tmp_path):
    cfg_path = tmp_path / "config"
    cfg_path.write_text("vault: /single/path\n")
    with pytest.raises(ConfigError, match="failed to parse config: invalid vault configuration"):
        load(cfg_path)


def test_load_empty_file(tmp_path):
    cfg_path = tmp_path / "config"
    cfg_path.write_text("")
    with pytest.raises(ConfigError, match="config file is empty"):
        load(cfg_path)


def test_load_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="failed to read config"):
        load(tmp_path / "absent")


def test_parse_config_fields():
    cfg = parse_config("fingerprint: ABC\nvault: [a, b]\nstrict: true\n")
    assert cfg.fingerprint == "ABC"
    assert cfg.vault == ["a", "b"]
    assert cfg.strict is True
    assert cfg.approved_algorithms == []


def test_from_dict_rejects_bad_strict():
    with pytest.raises(ConfigError):
        Config.from_dict({"strict": "yes please"})


def test_allowed_algorithms_string():
    assert default_config().allowed_algorithms_string() == (
        "Allowed algorithms: ECC (minimum 384 bits, curves: P-384, P-521), "
        "EdDSA (minimum 255 bits, curves: Ed25519, Ed448), RSA (minimum 2048 bits)"
    )


def test_get_fingerprint_from_env():
    assert get_fingerprint_from_env("ENVFP", "CFGFP") == "ENVFP"
    assert get_fingerprint_from_env("", "CFGFP") == "CFGFP"