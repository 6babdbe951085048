"""Configuration model, YAML loading and saving, and algorithm policy checks."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

import yaml

from dotsecenv.algorithms import extract_algorithm_name

_CURVE_FAMILIES = {"ECC": "ECC ", "EdDSA": "EdDSA "}


class ConfigError(Exception):
    """Raised when a configuration cannot be read, parsed or written."""


@dataclass
class ApprovedAlgorithm:
    """An approved algorithm family with its minimum bit length and allowed curves."""

    algo: str
    curves: list[str] = field(default_factory=list)
    min_bits: int = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"algo": self.algo}
        if self.curves:
            data["curves"] = list(self.curves)
        data["min_bits"] = self.min_bits
        return data


@dataclass
class Config:
    """The tool's configuration."""

    approved_algorithms: list[ApprovedAlgorithm] = field(default_factory=list)
    fingerprint: str = ""
    vault: list[str] = field(default_factory=list)
    strict: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> Config:
        """Build a Config from decoded YAML data."""
        return _build_config(data, None)

    def to_dict(self) -> dict[str, Any]:
        """Return the config as plain data in its on-disk key order."""
        data: dict[str, Any] = {
            "approved_algorithms": [alg.to_dict() for alg in self.approved_algorithms],
        }
        if self.fingerprint:
            data["fingerprint"] = self.fingerprint
        data["vault"] = list(self.vault)
        data["strict"] = self.strict
        return data

    def is_algorithm_allowed(self, algo: str, bits: int) -> bool:
        """Return whether ``algo`` with ``bits`` bits satisfies the approved algorithms."""
        if not self.approved_algorithms:
            return False
        algo_name = extract_algorithm_name(algo)
        for req in self.approved_algorithms:
            if algo_name.casefold() != req.algo.casefold():
                continue
            if 0 < bits < req.min_bits:
                return False
            prefix = _CURVE_FAMILIES.get(req.algo)
            if prefix is not None:
                if not req.curves:
                    return False
                curve = algo.removeprefix(prefix).strip()
                return _is_curve_allowed(curve, req.curves)
            return True
        return False

    def allowed_algorithms_string(self) -> str:
        """Return a human-readable summary of the approved algorithms."""
        parts = []
        for alg in self.approved_algorithms:
            part = f"{alg.algo} (minimum {alg.min_bits} bits"
            if alg.curves:
                part += f", curves: {', '.join(alg.curves)}"
            parts.append(part + ")")
        return "Allowed algorithms: " + ", ".join(parts)


def _is_curve_allowed(curve: str, allowed_curves: list[str]) -> bool:
    curve = curve.strip().casefold()
    return any(curve == allowed.casefold() for allowed in allowed_curves)


def _scalar_text(value: Any, what: str) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    raise ConfigError(f"{what}: expected a string, got {type(value).__name__}")


def _vault_error(kind: str, line: int | None) -> ConfigError:
    line_info = f" on line {line}" if line is not None else ""
    return ConfigError(
        f"invalid vault configuration{line_info}:\n"
        "  Expected format: vault: [/path/to/vault, /path/to/other]\n"
        "  Got: vault structure error (check for object syntax or missing brackets)\n"
        f"  Original error: cannot unmarshal {kind} into a list of strings"
    )


def _parse_vault(value: Any, line: int | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, dict):
        raise _vault_error("mapping", line)
    if not isinstance(value, list):
        raise _vault_error(type(value).__name__, line)
    return [_scalar_text(item, "vault entry") for item in value]


def _parse_algorithm(item: Any) -> ApprovedAlgorithm:
    if not isinstance(item, dict):
        raise ConfigError("approved_algorithms entries must be mappings")
    curves = item.get("curves")
    if curves is None:
        curves = []
    elif not isinstance(curves, list):
        raise ConfigError("approved_algorithms curves must be a list")
    min_bits = item.get("min_bits")
    if min_bits is None:
        min_bits = 0
    elif isinstance(min_bits, bool) or not isinstance(min_bits, int):
        raise ConfigError("approved_algorithms min_bits must be an integer")
    return ApprovedAlgorithm(
        algo=_scalar_text(item.get("algo"), "algo"),
        curves=[_scalar_text(curve, "curve") for curve in curves],
        min_bits=min_bits,
    )


def _build_config(data: Any, vault_line: int | None) -> Config:
    if data is None:
        return Config()
    if not isinstance(data, dict):
        raise ConfigError("configuration must be a mapping")

    algorithms = data.get("approved_algorithms")
    if algorithms is None:
        algorithms = []
    elif not isinstance(algorithms, list):
        raise ConfigError("approved_algorithms must be a list")

    strict = data.get("strict")
    if strict is None:
        strict = False
    elif not isinstance(strict, bool):
        raise ConfigError("strict must be a boolean")

    return Config(
        approved_algorithms=[_parse_algorithm(item) for item in algorithms],
        fingerprint=_scalar_text(data.get("fingerprint"), "fingerprint"),
        vault=_parse_vault(data.get("vault"), vault_line),
        strict=strict,
    )


def _vault_line(text: str) -> int | None:
    try:
        node = yaml.compose(text, Loader=yaml.SafeLoader)
    except yaml.YAMLError:
        return None
    if not isinstance(node, yaml.MappingNode):
        return None
    for key, value in node.value:
        if isinstance(key, yaml.ScalarNode) and key.value == "vault":
            return value.start_mark.line + 1
    return None


def parse_config(text: str) -> Config:
    """Parse YAML text into a Config."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(str(exc)) from exc
    return _build_config(data, _vault_line(text))


def default_config() -> Config:
    """Return a Config with FIPS 186-5 algorithm defaults and no vaults."""
    return Config(
        approved_algorithms=[
            ApprovedAlgorithm(algo="ECC", curves=["P-384", "P-521"], min_bits=384),
            ApprovedAlgorithm(algo="EdDSA", curves=["Ed25519", "Ed448"], min_bits=255),
            ApprovedAlgorithm(algo="RSA", min_bits=2048),
        ],
        fingerprint="",
        vault=[],
        strict=False,
    )


def load(path: str | os.PathLike[str]) -> Config:
    """Read and parse the config file at ``path``."""
    try:
        with open(path, encoding="utf-8") as handle:
            text = handle.read()
    except OSError as exc:
        raise ConfigError(f"failed to read config: {exc}") from exc
    if not text:
        raise ConfigError("config file is empty")
    try:
        return parse_config(text)
    except ConfigError as exc:
        raise ConfigError(f"failed to parse config: {exc}") from exc


def save(path: str | os.PathLike[str], cfg: Config) -> None:
    """Write ``cfg`` to ``path`` as YAML, creating the parent directory if needed."""
    directory = os.path.dirname(os.fspath(path)) or "."
    try:
        os.makedirs(directory, mode=0o700, exist_ok=True)
    except OSError as exc:
        raise ConfigError(f"failed to create directory: {exc}") from exc

    text = yaml.safe_dump(cfg.to_dict(), sort_keys=False, default_flow_style=False)
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
    except OSError as exc:
        raise ConfigError(f"failed to write config: {exc}") from exc


def get_fingerprint_from_env(env_fingerprint: str, cfg_fingerprint: str) -> str:
    """Prefer the environment's fingerprint over the configured one."""
    return env_fingerprint or cfg_fingerprint