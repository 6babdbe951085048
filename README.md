# dotsecenv

A library for working with secret vaults in which every secret value is
encrypted to the identities allowed to read it and every entry is signed.
It carries the configuration and algorithm policy that decide which keys
may be used, and the operations for storing, reading, sharing, listing,
defragmenting and validating secrets across several configured vaults.

## Install

```
pip install dotsecenv
```

## Algorithm names and policy

```python
from dotsecenv.algorithms import extract_algorithm_name, extract_bit_length, get_algorithm_details

extract_algorithm_name("RSA-4096")   # "RSA"
extract_bit_length("ECC P-521")      # 521
get_algorithm_details("AES-256-GCM") # ("AES", 256)
```

`new_fips_validator()` returns an `AlgorithmValidator` whose asymmetric set is
`ECC-P521` and `RSA-4096`; `validate_asymmetric` raises
`AlgorithmNotAllowedError` for anything else. `validate_fips186_5_compliance`
does the same check against the whole FIPS 186-5 set (key, cipher, hash, MAC
and signature algorithms).

## Configuration

The configuration is a YAML file:

```yaml
approved_algorithms:
  - algo: ECC
    curves: [P-384, P-521]
    min_bits: 384
  - algo: EdDSA
    curves: [Ed25519, Ed448]
    min_bits: 255
  - algo: RSA
    min_bits: 2048
vault:
  - .dotsecenv/vault
strict: false
```

```python
from dotsecenv import config

cfg = config.default_config()
cfg.is_algorithm_allowed("ECC P-384", 384)   # True
cfg.is_algorithm_allowed("ECC P-256", 256)   # False
cfg.is_algorithm_allowed("RSA", 1024)        # False

config.save("/tmp/dotsecenv/config", cfg)
loaded = config.load("/tmp/dotsecenv/config")
print(loaded.allowed_algorithms_string())
```

`load` and `parse_config` raise `ConfigError` for a missing, empty or
malformed file. A `vault` key that is not a list of paths gets a message
explaining the expected shape, with the line it was found on.
`save` creates the parent directory with mode 0700 and writes the file with
mode 0600. `get_fingerprint_from_env` prefers a fingerprint from the
environment over the configured one.

## Default locations

`dotsecenv.xdg.new_paths()` follows `XDG_CONFIG_HOME` and `XDG_DATA_HOME`,
falling back to `~/.config` and `~/.local/share`. `Paths.config_path()` is
`<config home>/dotsecenv/config` and `Paths.vault_path()` is
`<data home>/dotsecenv/vault`; `Paths.ensure_dirs()` creates both
directories. `Paths.default_vault_paths(is_suid)` lists the project vault
`.dotsecenv/vault`, the user vault and the system vault
`/var/lib/dotsecenv/vault`; under SUID only the system vault is kept.

## Operations on vaults

A `dotsecenv.session.Session` holds what an operation runs against: a
`VaultResolver`, a `GpgClient`, the `Config`, the active fingerprint and the
stdin, stdout and stderr streams. Where several vaults could be meant, it asks
through `chooser` and `confirmer` callables, which by default prompt on stderr
and read the answer from stdin.

- `dotsecenv.secrets.secret_put(session, secret_key, vault_path, from_index)`
  reads one line from stdin, encrypts it to the active identity, signs it and
  stores it; it returns the new `Secret`.
- `dotsecenv.secrets.secret_get(session, secret_key, all_values, last,
  json_output, vault_path, from_index)` decrypts and prints a value, or the
  whole history newest first, and returns `SecretValueRecord`s.
- `dotsecenv.sharing.secret_share` re-encrypts a secret's latest value to one
  more identity in one vault; `secret_share_all` does so in every vault that
  holds it and returns how many vaults were updated.
- `dotsecenv.vaults.vault_list` prints each vault's sorted secret keys;
  `vault_defrag` reports fragmentation and defragments when advised and
  confirmed, returning a `DefragReport`.
- `dotsecenv.validation.validate` reports on the config file, the approved
  algorithms, each vault's identities (against the algorithm policy) and each
  secret's signatures. It raises when a check fails and otherwise returns the
  warnings found as `Issue`s.

Vaults are chosen by path (`vault_path`) or by 1-based position
(`from_index`); with neither, a single vault is used directly and several are
offered for selection. Failures raise `CommandError`, whose `exit_code` is an
`ExitCode` suitable for a process exit status. With `strict: true` in the
config, decode and decrypt failures and the `last`-with-vault combination
become errors instead of warnings, and the strict flag is passed on to the
resolver and vault managers when they pick an accessible value.

## What this package does not do

`VaultResolver`, `VaultManager` and `GpgClient` are interfaces only. The
package does not read or write vault files itself, and it does not perform
OpenPGP encryption, decryption or signing; callers supply objects that do.
There is no command-line program. `validate` does not inspect the vault file's
layout, header or field order, and its `fix` argument repairs nothing.

## Tests

```
pip install -e .[test]
pytest
```