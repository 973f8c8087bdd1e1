from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from web3 import Web3

from walletbot.errors import FlowError, ValidationFailed
from walletbot.ledger import TokenArtifact
from walletbot.wallet_flows import (
    address,
    build_wallet_flows,
    ens_label,
    positive_amount,
    secret_text,
    token_name,
    token_supply,
    token_symbol,
    years,
)


@pytest.mark.parametrize("validator, raw, expected", [
    (token_name, "  My Token ", "My Token"),
    (token_symbol, "mtk", "MTK"),
    (token_supply, "1,000,000", 1000000),
    (token_supply, "1_000", 1000),
    (positive_amount, "0.25", Decimal("0.25")),
    (positive_amount, "1e-3", Decimal("0.001")),
    (address, "0x" + "ab" * 20, Web3.to_checksum_address("0x" + "ab" * 20)),
    (ens_label, " Vitalik.ETH ", "vitalik"),
    (years, "3", 3),
    (secret_text, " 0xabc ", "0xabc"),
])
def test_validators_accept(validator, raw, expected):
    assert validator(raw) == expected


@pytest.mark.parametrize("validator, raw", [
    (token_name, "   "),
    (token_name, "x" * 51),
    (token_symbol, "TOOLONGSYMBOL"),
    (token_symbol, "M-T-K"),
    (token_supply, "0"),
    (token_supply, "1.5"),
    (token_supply, "many"),
    (token_supply, "²"),
    (positive_amount, "abc"),
    (positive_amount, "-1"),
    (positive_amount, "0"),
    (positive_amount, "NaN"),
    (positive_amount, "Infinity"),
    (address, "0x1234"),
    (address, "vitalik.eth"),
    (ens_label, "ab"),
    (ens_label, "under_score"),
    (years, "0"),
    (years, "11"),
    (years, "²"),
    (secret_text, "  "),
])
def test_validators_reject(validator, raw):
    with pytest.raises(ValidationFailed):
        validator(raw)


def test_flow_catalogue():
    flows = {flow.flow_id: flow for flow in build_wallet_flows(token_artifact=TokenArtifact([], "0x00"))}

    assert set(flows) == {
        "create_wallet", "import_wallet", "switch_network", "create_token",
        "send_funds", "transfer_token", "ens_register", "token_lookup",
    }
    assert {flow_id for flow_id, flow in flows.items() if flow.mutating} == {
        "create_token", "send_funds", "transfer_token", "ens_register",
    }
    assert not flows["create_wallet"].requires_session
    assert not flows["import_wallet"].requires_session
    assert flows["import_wallet"].steps[0].sensitive


def test_missing_bytecode_disables_token_creation():
    flow = {f.flow_id: f for f in build_wallet_flows(token_artifact=TokenArtifact([], ""))}["create_token"]
    engine = MagicMock()
    ctx = MagicMock(prefill={})
    ctx.session.network_id = "airdao"

    with pytest.raises(FlowError) as excinfo:
        flow.precheck(engine, ctx)
    assert "not configured" in excinfo.value.user_message
