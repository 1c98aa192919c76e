"""
Tests for the fetch -> normalize -> write pipeline and its CLI.

The explorer is replaced by an in-memory fetcher keyed by address.
"""

import json

import pandas as pd
import pytest

from config_loader import SourceFetchSettings
from conftest import make_response
from explorer_client import ExplorerRequestError
from fetch_contract_sources import download_contract_sources, load_targets, main
from source_normalizer import InvalidFileContent, InvalidResponse

VAULT = "0x5a32099837d89e3a794a44fb131cbbad41f87a8c"
TOKEN = "0xe66f6a37c807f71591854e22075b3a613b46abe2"


class FakeExplorer:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def __call__(self, address, api_key, **kwargs):
        self.calls.append((address, api_key, kwargs))
        resp = self.responses[address]
        if isinstance(resp, Exception):
            raise resp
        return resp


@pytest.fixture
def settings(tmp_path):
    return SourceFetchSettings(api_key="KEY", chain="base", outdir=tmp_path / "out", sleep_sec=0.0)


# =============================================================
# TEST: single-contract pipeline
# =============================================================

class TestDownloadContractSources:

    def test_writes_standard_json_tree(self, settings, standard_json_source):
        fetch = FakeExplorer({VAULT: make_response(standard_json_source, "Vault")})
        result = download_contract_sources(VAULT, settings, fetch=fetch)

        base = settings.outdir / "base" / VAULT
        assert result.as_dict() == {"name": "Vault", "files": ["contracts/Vault.sol", "contracts/lib/Math.sol"]}
        assert (base / "contracts" / "lib" / "Math.sol").read_text(encoding="utf-8") == "library Math {}"

    def test_passes_settings_to_fetcher(self, settings):
        fetch = FakeExplorer({VAULT: make_response("contract A{}")})
        download_contract_sources(VAULT, settings, fetch=fetch)

        address, api_key, kwargs = fetch.calls[0]
        assert (address, api_key) == (VAULT, "KEY")
        assert kwargs["chain_id"] == 8453
        assert kwargs["base_url"] == settings.base_url

    def test_plain_text_single_file(self, settings):
        fetch = FakeExplorer({VAULT: make_response("contract A{}", "A")})
        download_contract_sources(VAULT, settings, fetch=fetch)
        assert (settings.outdir / "base" / VAULT / "A.sol").read_text(encoding="utf-8") == "contract A{}"

    def test_failure_status_writes_nothing(self, settings):
        fetch = FakeExplorer({VAULT: make_response("contract A{}", status="0", message="NOTOK")})
        with pytest.raises(InvalidResponse):
            download_contract_sources(VAULT, settings, fetch=fetch)
        assert not (settings.outdir / "base" / VAULT).exists()

    def test_invalid_entry_writes_nothing(self, settings):
        fetch = FakeExplorer({VAULT: make_response('{"A.sol":{"content":"a"},"B.sol":{"foo":"bar"}}')})
        with pytest.raises(InvalidFileContent):
            download_contract_sources(VAULT, settings, fetch=fetch)
        assert not (settings.outdir / "base" / VAULT / "A.sol").exists()

    def test_unverified_contract_writes_nothing(self, settings):
        fetch = FakeExplorer({VAULT: make_response("", "")})
        with pytest.raises(InvalidResponse):
            download_contract_sources(VAULT, settings, fetch=fetch)
        assert not (settings.outdir / "base" / VAULT).exists()

    def test_save_raw(self, settings):
        body = make_response("contract A{}")
        fetch = FakeExplorer({VAULT: body})
        download_contract_sources(VAULT, settings, save_raw=True, fetch=fetch)

        raw = settings.outdir / "base" / f"{VAULT}.json"
        assert json.loads(raw.read_text(encoding="utf-8")) == body


# =============================================================
# TEST: target loading
# =============================================================

class TestLoadTargets:

    def test_dedupes_lowercases_and_skips_invalid(self):
        targets = load_targets([VAULT.upper().replace("0X", "0x"), VAULT, "0x123"], None, "ethereum")
        assert targets == [("ethereum", VAULT)]

    def test_reads_csv_with_contract_address_column(self, tmp_path):
        csv = tmp_path / "in.csv"
        pd.DataFrame({"contract_address": [VAULT, TOKEN], "chain": ["Base", None]}).to_csv(csv, index=False)

        assert load_targets([], csv, "ethereum") == [("base", VAULT), ("ethereum", TOKEN)]

    def test_missing_csv(self, tmp_path):
        with pytest.raises(SystemExit):
            load_targets([], tmp_path / "nope.csv", "ethereum")

    def test_csv_without_address_column(self, tmp_path):
        csv = tmp_path / "in.csv"
        pd.DataFrame({"slug": ["aave"]}).to_csv(csv, index=False)
        with pytest.raises(SystemExit):
            load_targets([], csv, "ethereum")


# =============================================================
# TEST: CLI
# =============================================================

class TestMain:

    @pytest.fixture
    def cli_args(self, tmp_path, no_env, monkeypatch):
        monkeypatch.setenv("EXPLORER_API_KEY", "KEY")
        return [
            "--env-file", str(tmp_path / ".env"),
            "--outdir", str(tmp_path / "out"),
            "--log-dir", str(tmp_path / "logs"),
            "--summary", str(tmp_path / "summary.csv"),
        ]

    def test_all_ok(self, tmp_path, cli_args):
        fetch = FakeExplorer({VAULT: make_response('{"content":"contract A{}"}', "A")})
        assert main([VAULT, "--chain", "base", *cli_args], fetch=fetch) == 0

        assert (tmp_path / "out" / "base" / VAULT / "A.sol").exists()
        summary = pd.read_csv(tmp_path / "summary.csv")
        assert summary.loc[0, "ok"] == 1
        assert summary.loc[0, "files"] == "A.sol"
        assert (tmp_path / "logs" / "fetch_contract_sources.log").exists()

    def test_failures_are_recorded_and_batch_continues(self, tmp_path, cli_args):
        fetch = FakeExplorer({
            VAULT: ExplorerRequestError("HTTP 429"),
            TOKEN: make_response("contract Token{}", "Token"),
        })
        assert main([VAULT, TOKEN, *cli_args], fetch=fetch) == 1

        summary = pd.read_csv(tmp_path / "summary.csv").set_index("address")
        assert summary.loc[VAULT, "ok"] == 0
        assert "HTTP 429" in summary.loc[VAULT, "error"]
        assert summary.loc[TOKEN, "ok"] == 1
        assert (tmp_path / "out" / "ethereum" / TOKEN / "Token.sol").exists()

    def test_file_directory_clash_is_a_failed_row(self, tmp_path, cli_args):
        # "a" is written as a file, then "a/b.sol" needs "a" as a directory
        clash = json.dumps({"a": {"content": "x"}, "a/b.sol": {"content": "y"}})
        fetch = FakeExplorer({
            VAULT: make_response(clash, "Vault"),
            TOKEN: make_response("contract Token{}", "Token"),
        })
        assert main([VAULT, TOKEN, *cli_args], fetch=fetch) == 1

        summary = pd.read_csv(tmp_path / "summary.csv").set_index("address")
        assert summary.loc[VAULT, "ok"] == 0
        assert summary.loc[TOKEN, "ok"] == 1
        assert (tmp_path / "out" / "ethereum" / TOKEN / "Token.sol").exists()

    def test_unverified_contract_is_a_failed_row(self, tmp_path, cli_args):
        fetch = FakeExplorer({VAULT: make_response("", "")})
        assert main([VAULT, *cli_args], fetch=fetch) == 1
        assert "not verified" in pd.read_csv(tmp_path / "summary.csv").loc[0, "error"]

    def test_malformed_json_is_a_failed_row(self, tmp_path, cli_args):
        fetch = FakeExplorer({VAULT: make_response('{"sources": ')})
        assert main([VAULT, *cli_args], fetch=fetch) == 1
        assert "Failed to parse" in pd.read_csv(tmp_path / "summary.csv").loc[0, "error"]

    def test_unknown_chain_in_csv_is_a_failed_row(self, tmp_path, cli_args):
        csv = tmp_path / "in.csv"
        pd.DataFrame({"address": [VAULT], "chain": ["solana"]}).to_csv(csv, index=False)
        fetch = FakeExplorer({})
        assert main(["--csv", str(csv), *cli_args], fetch=fetch) == 1
        assert fetch.calls == []

    def test_no_addresses(self, cli_args):
        with pytest.raises(SystemExit):
            main(cli_args, fetch=FakeExplorer({}))

    def test_missing_api_key(self, tmp_path, no_env):
        with pytest.raises(SystemExit, match="API key"):
            main([VAULT, "--env-file", str(tmp_path / ".env"), "--log-dir", str(tmp_path / "logs")])
