import json

import pytest


def make_response(source_code, contract_name="A", status="1", message="OK"):
    return {
        "status": status,
        "message": message,
        "result": [
            {
                "SourceCode": source_code,
                "ContractName": contract_name,
                "ABI": "[]",
                "CompilerVersion": "v0.8.20+commit.a1b79de6",
            }
        ],
    }


@pytest.fixture
def standard_json_source():
    """Standard-JSON input as Etherscan returns it: double-brace wrapped, nested paths."""
    inner = {
        "language": "Solidity",
        "sources": {
            "contracts/Vault.sol": {"content": 'import "./lib/Math.sol";\ncontract Vault {}'},
            "contracts/lib/Math.sol": {"content": "library Math {}"},
        },
        "settings": {"optimizer": {"enabled": True, "runs": 200}},
    }
    return "{" + json.dumps(inner) + "}"


@pytest.fixture
def no_env(monkeypatch):
    for name in (
        "EXPLORER_API_KEY",
        "ETHERSCAN_API_KEY",
        "EXPLORER_BASE_URL",
        "EXPLORER_CHAIN",
        "SOURCES_OUTDIR",
        "FETCH_TIMEOUT",
        "FETCH_MAX_RETRIES",
        "FETCH_RETRY_SLEEP",
        "FETCH_SLEEP_SEC",
    ):
        monkeypatch.delenv(name, raising=False)
