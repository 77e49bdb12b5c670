import hashlib
import json

import pytest
from eth_keys import keys

import tx_tron
import wallet_core as core
from address_codec import tron_address_from_public_key, tron_address_to_hex
from tx_common import TransferParams
from wallet_errors import InvalidAddress, InvalidAmount, InvalidKey, UpstreamUnavailable


ABANDON_12 = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)
USDT_TRON = "TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t"


def tron_account(index):
    seed = core.mnemonic_to_seed(ABANDON_12)
    key = core.derive_key(seed, core.tron_path(index), core.Curve.SECP256K1).private_key
    address = core.derive_tron_addresses(ABANDON_12, start=index, count=1)[0].address
    return key, address


SENDER_KEY, SENDER = tron_account(0)
_, RECIPIENT = tron_account(1)


def node_transaction(raw_hex, tx_id=None):
    return {
        "visible": False,
        "txID": tx_id or hashlib.sha256(bytes.fromhex(raw_hex)).hexdigest(),
        "raw_data": {"ref_block_bytes": "abcd", "expiration": 1},
        "raw_data_hex": raw_hex,
    }


class FakeTronNetwork:
    def __init__(self, native=None, contract=None, fail=False):
        self.native = native
        self.contract = contract
        self.fail = fail
        self.calls = []

    async def create_transaction(self, owner_hex, to_hex, amount_sun):
        self.calls.append(("create", owner_hex, to_hex, amount_sun))
        if self.fail:
            raise ConnectionError("trongrid down")
        return self.native if self.native is not None else node_transaction("0a02abcd2208" + "11" * 8)

    async def trigger_smart_contract(self, owner_hex, contract_hex, function_selector, parameter, fee_limit, call_value=0):
        self.calls.append(("trigger", owner_hex, contract_hex, function_selector, parameter, fee_limit, call_value))
        if self.contract is not None:
            return self.contract
        return {"result": {"result": True}, "transaction": node_transaction("0a02beef" + "22" * 12)}


def params(**overrides):
    data = {"to": RECIPIENT, "amount": "10.5", "from_address": SENDER}
    data.update(overrides)
    return TransferParams(**data)


def recover_signer(tx):
    sig = bytes.fromhex(tx["signature"][0])
    assert len(sig) == 65 and sig[64] in (27, 28)
    signature = keys.Signature(signature_bytes=sig[:64] + bytes([sig[64] - 27]))
    public_key = signature.recover_public_key_from_msg_hash(bytes.fromhex(tx["txID"]))
    return tron_address_from_public_key(b"\x04" + public_key.to_bytes())


class TestNativeTransfer:
    async def test_signs_node_built_transaction(self):
        network = FakeTronNetwork()
        signed = await tx_tron.build_and_sign(SENDER_KEY, params(), network)

        assert network.calls == [("create", tron_address_to_hex(SENDER), tron_address_to_hex(RECIPIENT), 10_500_000)]
        tx = json.loads(signed.serialized_tx)
        assert signed.chain == "tron"
        assert signed.tx_id == tx["txID"]
        assert recover_signer(tx) == SENDER

    async def test_signature_is_deterministic(self):
        a = await tx_tron.build_and_sign(SENDER_KEY.hex(), params(), FakeTronNetwork())
        b = await tx_tron.build_and_sign("0x" + SENDER_KEY.hex(), params(), FakeTronNetwork())
        assert a.serialized_tx == b.serialized_tx


class TestTokenTransfer:
    async def test_trigger_smart_contract_parameters(self):
        network = FakeTronNetwork()
        p = params(is_token=True, token_identifier=USDT_TRON, amount="3")
        signed = await tx_tron.build_and_sign(SENDER_KEY, p, network, fee_limit=50_000_000)

        (_, owner, contract, selector, parameter, fee_limit, call_value), = network.calls
        assert owner == tron_address_to_hex(SENDER)
        assert contract == "41a614f803b6fd780986a42c78ec9c7f77e6ded13c"
        assert selector == "transfer(address,uint256)"
        assert parameter[:64] == "00" * 12 + tron_address_to_hex(RECIPIENT)[2:]
        assert int(parameter[64:], 16) == 3_000_000
        assert (fee_limit, call_value) == (50_000_000, 0)
        assert recover_signer(json.loads(signed.serialized_tx)) == SENDER

    async def test_node_error_message_is_decoded(self):
        response = {"result": {"code": "CONTRACT_VALIDATE_ERROR", "message": b"balance is not sufficient".hex()}}
        network = FakeTronNetwork(contract=response)
        p = params(is_token=True, token_identifier=USDT_TRON)
        with pytest.raises(UpstreamUnavailable, match="balance is not sufficient"):
            await tx_tron.build_and_sign(SENDER_KEY, p, network)


class TestNodeResponses:
    async def test_error_field(self):
        network = FakeTronNetwork(native={"Error": "class org.tron.core.exception.ContractValidateException"})
        with pytest.raises(UpstreamUnavailable, match="ContractValidateException"):
            await tx_tron.build_and_sign(SENDER_KEY, params(), network)

    async def test_txid_mismatch_rejected(self):
        network = FakeTronNetwork(native=node_transaction("0a02abcd", tx_id="00" * 32))
        with pytest.raises(UpstreamUnavailable, match="txID"):
            await tx_tron.build_and_sign(SENDER_KEY, params(), network)

    async def test_missing_raw_data_rejected(self):
        network = FakeTronNetwork(native={"txID": "00" * 32})
        with pytest.raises(UpstreamUnavailable):
            await tx_tron.build_and_sign(SENDER_KEY, params(), network)

    async def test_transport_failure_is_wrapped(self):
        with pytest.raises(UpstreamUnavailable):
            await tx_tron.build_and_sign(SENDER_KEY, params(), FakeTronNetwork(fail=True))


class TestValidation:
    @pytest.mark.parametrize(
        "overrides, error",
        [
            ({"to": "T" + "1" * 33}, InvalidAddress),
            ({"to": "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"}, InvalidAddress),
            ({"amount": "0.0000001"}, InvalidAmount),
            ({"amount": "9223372036854.775808"}, InvalidAmount),
            ({"is_token": True, "token_identifier": "TNotARealContract"}, InvalidAddress),
        ],
    )
    async def test_invalid_input_never_calls_network(self, overrides, error):
        network = FakeTronNetwork()
        with pytest.raises(error):
            await tx_tron.build_and_sign(SENDER_KEY, params(**overrides), network)
        assert network.calls == []

    async def test_largest_sun_amount_reaches_node(self):
        network = FakeTronNetwork()
        await tx_tron.build_and_sign(SENDER_KEY, params(amount="9223372036854.775807"), network)
        assert network.calls[0][3] == 2**63 - 1

    async def test_key_must_control_sender(self):
        network = FakeTronNetwork()
        with pytest.raises(InvalidKey):
            await tx_tron.build_and_sign(SENDER_KEY, params(from_address=RECIPIENT), network)
        assert network.calls == []
