import logging

from fastapi.testclient import TestClient

from gate.config import GateConfig, configure_logging, env_bool, load_env_file
from shared.errors import ProviderRpcError, UserRejectedRequestError
from shared.jsonrpc import parse_chain_id, split_call


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("GATE_PROVIDER_ATTR", "wallet")
    monkeypatch.setenv("GATE_POLL_INTERVAL_MS", "250")
    monkeypatch.setenv("GATE_WATCH_INTERVAL_MS", "2000")
    monkeypatch.setenv("GATE_ENABLED", "no")
    monkeypatch.setenv("GATE_REJECTION_PREFIX", "")
    cfg = GateConfig.from_env()

    assert cfg.provider_attr == "wallet"
    assert cfg.poll_interval_s == 0.25
    assert cfg.watch_interval_s == 2.0
    assert cfg.enabled is False
    assert cfg.rejection_message("message signature") == "User denied message signature."


def test_config_defaults_survive_garbage(monkeypatch):
    monkeypatch.setenv("GATE_POLL_INTERVAL_MS", "soon")
    monkeypatch.delenv("GATE_ENABLED", raising=False)
    cfg = GateConfig.from_env()
    assert cfg.poll_interval_s == 0.1
    assert cfg.enabled is True
    assert env_bool("GATE_UNSET_FLAG", False) is False


def test_load_env_file_exports_without_overriding(tmp_path, monkeypatch):
    env = tmp_path / ".env"
    env.write_text(
        "# comment\n"
        "\n"
        "export GATE_PROVIDER_ATTR=wallet\n"
        "GATE_REJECTION_PREFIX=\"Quoted Gate\"\n"
        "GATE_LOG_LEVEL=DEBUG\n"
        "not a pair\n",
        encoding="utf-8",
    )
    for key in ("GATE_PROVIDER_ATTR", "GATE_REJECTION_PREFIX"):
        # set first so monkeypatch restores the original state after load_env_file writes it
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    monkeypatch.setenv("GATE_LOG_LEVEL", "WARNING")

    exported = load_env_file(env)
    assert exported == {"GATE_PROVIDER_ATTR": "wallet", "GATE_REJECTION_PREFIX": "Quoted Gate"}
    cfg = GateConfig.from_env()
    assert cfg.provider_attr == "wallet"
    assert cfg.log_level == "WARNING"
    assert load_env_file(tmp_path / "missing.env") == {}


def test_configure_logging_accepts_unknown_level():
    configure_logging(GateConfig(log_level="CHATTY"))
    configure_logging(GateConfig(log_level="DEBUG"))
    assert logging.getLogger().handlers


def test_user_rejected_error_shape():
    err = UserRejectedRequestError("Gate: User denied message signature.")
    assert err.code == 4001
    assert err.kind == "user_rejected"
    assert str(err) == "Gate: User denied message signature."
    assert err.to_response(12) == {
        "jsonrpc": "2.0",
        "id": 12,
        "error": {"code": 4001, "message": "Gate: User denied message signature."},
    }


def test_provider_error_keeps_data():
    err = ProviderRpcError(-32603, "boom", data={"why": "x"})
    assert err.to_response("a")["error"] == {"code": -32603, "message": "boom", "data": {"why": "x"}}


def test_split_call_and_chain_id_parsing():
    assert split_call({"method": "eth_sign", "params": ("a", "b")}) == ("eth_sign", ["a", "b"])
    assert split_call({"method": "eth_accounts"}) == ("eth_accounts", [])
    assert split_call("eth_accounts") == (None, [])
    assert parse_chain_id("0x89") == 137
    assert parse_chain_id("10") == 10
    assert parse_chain_id(1) == 1
    assert parse_chain_id(True) is None
    assert parse_chain_id("mainnet") is None


def test_app_wires_confirmation_routes():
    from main import create_app

    with TestClient(create_app(config=GateConfig())) as client:
        assert client.get("/health").json() == {"ok": True}
        assert client.get("/confirmations").json() == {"confirmations": []}
        assert client.app.state.responder is not None
