import pytest

from tx_common import (
    UINT64_LIMIT,
    UINT256_LIMIT,
    TransferParams,
    call_upstream,
    encode_transfer_call,
    parse_private_key,
    require_token_identifier,
    to_base_units,
)
from wallet_errors import InvalidAmount, InvalidKey, MissingParameter, UpstreamUnavailable


class TestToBaseUnits:
    @pytest.mark.parametrize(
        "amount, decimals, expected",
        [
            ("1", 18, 10**18),
            ("0.5", 9, 500_000_000),
            ("10.5", 6, 10_500_000),
            ("1.9999999", 6, 1_999_999),  # truncated, never rounded up
            (" 2 ", 0, 2),
            ("123456789.123456789123456789", 18, 123456789123456789123456789),
            (3, 6, 3_000_000),
        ],
    )
    def test_conversion(self, amount, decimals, expected):
        assert to_base_units(amount, decimals) == expected

    @pytest.mark.parametrize("amount", ["0", "-1", "0.0000001", "abc", "", "NaN", "Infinity", None])
    def test_rejected(self, amount):
        with pytest.raises(InvalidAmount):
            to_base_units(amount, 6)

    def test_negative_decimals_rejected(self):
        with pytest.raises(InvalidAmount):
            to_base_units("1", -1)

    def test_limit_is_exclusive(self):
        assert to_base_units(str(UINT64_LIMIT - 1), 0, limit=UINT64_LIMIT) == UINT64_LIMIT - 1
        with pytest.raises(InvalidAmount, match="too large"):
            to_base_units(str(UINT64_LIMIT), 0, limit=UINT64_LIMIT)
        with pytest.raises(InvalidAmount, match="too large"):
            to_base_units("1e60", 18, limit=UINT256_LIMIT)


class TestParsePrivateKey:
    KEY = "ac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"

    def test_hex_forms(self):
        raw = bytes.fromhex(self.KEY)
        assert parse_private_key(self.KEY) == raw
        assert parse_private_key("0x" + self.KEY) == raw
        assert parse_private_key(f"  {self.KEY.upper()}\n") == raw
        assert parse_private_key(raw) == raw

    @pytest.mark.parametrize(
        "key",
        ["", "0x", "abc", "zz" * 32, "00" * 31, "00" * 33, "00" * 32, "ff" * 32, 1234, None],
    )
    def test_rejected(self, key):
        with pytest.raises(InvalidKey):
            parse_private_key(key)

    def test_range_check_can_be_skipped_for_ed25519(self):
        assert parse_private_key("ff" * 32, secp256k1=False) == b"\xff" * 32


class TestTransferParams:
    def test_from_mapping_accepts_camel_case(self):
        params = TransferParams.from_mapping({
            "to": "a", "amount": 1.5, "from": "b", "isToken": True,
            "tokenMint": "mint", "decimals": 6, "priorityFee": 1000,
        })
        assert params == TransferParams(
            to="a", amount="1.5", from_address="b", is_token=True,
            token_identifier="mint", decimals=6, priority_fee=1000,
        )

    def test_from_mapping_contract_address_alias(self):
        params = TransferParams.from_mapping({"to": "a", "amount": "1", "from": "b", "contractAddress": "c"})
        assert params.token_identifier == "c"

    @pytest.mark.parametrize("missing", ["to", "amount", "from"])
    def test_from_mapping_requires_core_fields(self, missing):
        data = {"to": "a", "amount": "1", "from": "b"}
        del data[missing]
        with pytest.raises(MissingParameter, match=missing):
            TransferParams.from_mapping(data)

    def test_require_token_identifier(self):
        with pytest.raises(MissingParameter, match="token mint"):
            require_token_identifier(TransferParams("a", "1", "b", is_token=True), "token mint")


def test_encode_transfer_call_bounds():
    with pytest.raises(ValueError):
        encode_transfer_call(b"\x01" * 21, 1)
    with pytest.raises(InvalidAmount):
        encode_transfer_call(b"\x01" * 20, 1 << 256)
    assert encode_transfer_call(b"\x01" * 20, 255).endswith("ff")


class TestCallUpstream:
    async def test_passes_result_through(self):
        async def ok():
            return 42

        assert await call_upstream("thing", ok()) == 42

    async def test_wraps_foreign_errors(self):
        async def broken():
            raise OSError("connection reset")

        with pytest.raises(UpstreamUnavailable, match="nonce lookup failed: connection reset") as excinfo:
            await call_upstream("nonce lookup", broken())
        assert isinstance(excinfo.value.__cause__, OSError)

    async def test_wallet_errors_pass_unchanged(self):
        async def invalid():
            raise InvalidKey("bad key")

        with pytest.raises(InvalidKey):
            await call_upstream("thing", invalid())
