"""
Acceptance test fixtures: drive the real `mkrpki` CLI with click's CliRunner.

The `chain` fixture builds a complete small repository once per module
(keys → TA + TAL → CA → CRL → ROA → manifest) in a temporary directory,
exactly as an operator would from a shell.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest
from click.testing import CliRunner, Result

from mkrpki.main import cli

BASE_URI = "rsync://example.net/repo"


def run_cli(*args: str | Path, env: dict[str, str] | None = None) -> Result:
    """Invoke mkrpki in-process; logs go to result.stderr, written paths to result.stdout."""
    runner = CliRunner()
    return runner.invoke(cli, [str(arg) for arg in args], env=env, catch_exceptions=False)


def run_ok(*args: str | Path) -> Result:
    result = run_cli(*args)
    assert result.exit_code == 0, result.stderr
    return result


def signed_object_args(uri: str) -> list[str]:
    return [
        "--crl", f"{BASE_URI}/ca/ca.crl",
        "--ca-issuer", f"{BASE_URI}/ca.cer",
        "--signed-object", uri,
        "--not-before", "2024-01-01",
        "--not-after", "2030-01-01",
    ]


@dataclass(frozen=True)
class Chain:
    root: Path
    keys: Path
    repo: Path

    def key(self, name: str) -> Path:
        return self.keys / name

    def published(self, name: str) -> Path:
        return self.repo / name


@pytest.fixture(scope="module")
def chain(tmp_path_factory: pytest.TempPathFactory) -> Chain:
    root = tmp_path_factory.mktemp("pki")
    chain = Chain(root, root / "keys", root / "repo")

    for name in ("ta", "ca"):
        run_ok("key", "--private", chain.key(f"{name}.der"), "--public", chain.key(f"{name}.pub"))

    run_ok(
        "ta",
        "--key", chain.key("ta.der"),
        "--serial", "1",
        "--not-before", "2024-01-01",
        "--not-after", "2034-01-01",
        "--ca-repository", f"{BASE_URI}/",
        "--rpki-manifest", f"{BASE_URI}/ta.mft",
        "--v4", "10.0.0.0/8",
        "--v6", "2001:db8::/32",
        "--as", "64496-64511",
        "--tal-rsync-uri", f"{BASE_URI}/ta.cer",
        "--tal-https-uri", "https://example.net/ta.cer",
        "--output", chain.published("ta.cer"),
        "--output-tal", chain.published("ta.tal"),
    )
    run_ok(
        "cer",
        "--issuer-key", chain.key("ta.der"),
        "--subject-key", chain.key("ca.pub"),
        "--serial", "2",
        "--not-before", "2024-01-01",
        "--not-after", "2030-01-01",
        "--crl", f"{BASE_URI}/ta.crl",
        "--ca-issuer", f"{BASE_URI}/ta.cer",
        "--ca-repository", f"{BASE_URI}/ca/",
        "--rpki-manifest", f"{BASE_URI}/ca/ca.mft",
        "--v4", "10.1.0.0/16",
        "--inherit-as",
        "--output", chain.published("ca.cer"),
    )
    run_ok(
        "crl",
        "--issuer-key", chain.key("ca.der"),
        "--this-update", "2024-03-01",
        "--next-update", "2024-03-02",
        "-c", "9,3",
        "-c", "5:2024-02-01",
        "--crl", "1",
        "--output", chain.published("ca/ca.crl"),
    )
    run_ok(
        "roa",
        "--issuer-key", chain.key("ca.der"),
        "--serial", "10",
        *signed_object_args(f"{BASE_URI}/ca/a.roa"),
        "--asn", "AS64496",
        "--prefixes", "10.1.2.0/24-26,10.1.3.0/24",
        "--output", chain.published("ca/a.roa"),
    )
    run_ok(
        "mft",
        "--issuer-key", chain.key("ca.der"),
        "--serial", "11",
        *signed_object_args(f"{BASE_URI}/ca/ca.mft"),
        "--number", "1",
        "--this-update", "2024-03-01",
        "--next-days", "1",
        "--files", chain.published("ca/a.roa"),
        "--files", chain.published("ca/ca.crl"),
        "--output", chain.published("ca/ca.mft"),
    )
    return chain
