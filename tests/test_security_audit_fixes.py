"""Tests for derivation-core hardening.

Covers: BIP32 IL>=N checks, path parsing, is_hex, validate_mnemonic,
ed25519 hardened-only derivation and end-to-end EVM address vectors.
"""

import pytest

import wallet_core as core
from wallet_errors import InvalidKey, InvalidMnemonic, InvalidPath


# ---------------------------------------------------------------------------
# BIP32 IL >= N guard
# ---------------------------------------------------------------------------

class TestBIP32ILGuard:
    """Verify that IL >= N is rejected instead of silently skipping the index."""

    def test_bip32_master_key_rejects_il_ge_n(self, monkeypatch):
        """If HMAC-SHA512 returns IL >= N, bip32_master_key must raise."""
        fake_il = core.int_to_bytes(core.N, 32)  # IL == N (invalid)
        fake_ir = b"\x01" * 32
        monkeypatch.setattr(core, "hmac_sha512", lambda k, d: fake_il + fake_ir)
        with pytest.raises(InvalidKey, match="parse256\\(IL\\) >= n"):
            core.bip32_master_key(b"\x00" * 64)

    def test_bip32_master_key_rejects_il_zero(self, monkeypatch):
        fake_il = b"\x00" * 32
        fake_ir = b"\x01" * 32
        monkeypatch.setattr(core, "hmac_sha512", lambda k, d: fake_il + fake_ir)
        with pytest.raises(ValueError, match="zero"):
            core.bip32_master_key(b"\x00" * 64)

    def test_ckd_priv_rejects_il_ge_n(self, monkeypatch):
        """If HMAC-SHA512 returns IL >= N during CKD, must raise."""
        fake_il = core.int_to_bytes(core.N, 32)
        fake_ir = b"\x01" * 32
        monkeypatch.setattr(core, "hmac_sha512", lambda k, d: fake_il + fake_ir)
        with pytest.raises(ValueError, match="parse256\\(IL\\) >= n"):
            core.ckd_priv(1, b"\x01" * 32, 0x80000000)

    def test_derive_key_surfaces_invalid_child(self, monkeypatch):
        real = core.hmac_sha512
        calls = {"n": 0}

        def flaky(key, data):
            calls["n"] += 1
            if calls["n"] == 2:
                return core.int_to_bytes(core.N + 1, 32) + b"\x01" * 32
            return real(key, data)

        monkeypatch.setattr(core, "hmac_sha512", flaky)
        with pytest.raises(InvalidKey):
            core.derive_key(b"\x00" * 64, "m/0'", core.Curve.SECP256K1)


# ---------------------------------------------------------------------------
# Derivation path parsing
# ---------------------------------------------------------------------------

class TestDerivationPathParse:
    def test_standard_path_round_trips(self):
        path = core.DerivationPath.parse("m/44'/60'/0'/0/0")
        assert str(path) == "m/44'/60'/0'/0/0"
        assert path.indices[0] == 44 + core.HARDENED_OFFSET
        assert path.indices[-1] == 0

    def test_h_markers_are_hardened(self):
        assert core.DerivationPath.parse("m/44h/501H/0'") == core.DerivationPath.parse("m/44'/501'/0'")

    def test_root_path_is_empty(self):
        assert core.DerivationPath.parse("m").indices == ()

    def test_root_path_returns_master(self):
        seed = bytes(range(16))
        k, c = core.bip32_master_key(seed)
        derived = core.derive_key(seed, "m", core.Curve.SECP256K1)
        assert derived.private_key == core.ser256(k)
        assert derived.chain_code == c

    def test_invalid_path_prefix_raises(self):
        with pytest.raises(InvalidPath, match="must start with m/"):
            core.DerivationPath.parse("x/0")

    @pytest.mark.parametrize(
        "path",
        ["m/", "m//0", "m/-1", "m/+1", "m/abc", "m/1.5", "m/0''", "m/１"],
    )
    def test_malformed_segments_raise(self, path):
        with pytest.raises(InvalidPath):
            core.DerivationPath.parse(path)

    def test_index_above_uint31_raises(self):
        with pytest.raises(InvalidPath, match="between 0 and"):
            core.DerivationPath.parse(f"m/{2**31}'")

    def test_max_index_is_accepted(self):
        path = core.DerivationPath.parse(f"m/{2**31 - 1}'")
        assert path.indices == (0xFFFFFFFF,)

    def test_invalid_path_is_a_value_error(self):
        with pytest.raises(ValueError):
            core.DerivationPath.parse("m/x")


# ---------------------------------------------------------------------------
# is_hex rejects negative and edge cases
# ---------------------------------------------------------------------------

class TestIsHex:
    def test_valid_hex(self):
        assert core.is_hex("0123456789abcdef") is True
        assert core.is_hex("ABCDEF") is True
        assert core.is_hex("0" * 64) is True

    def test_rejects_negative(self):
        assert core.is_hex("-1") is False
        assert core.is_hex("-ff") is False

    def test_rejects_empty(self):
        assert core.is_hex("") is False

    def test_rejects_non_hex(self):
        assert core.is_hex("xyz") is False
        assert core.is_hex("0xABCD") is False  # contains 'x'
        assert core.is_hex(" ") is False


# ---------------------------------------------------------------------------
# validate_mnemonic
# ---------------------------------------------------------------------------

ABANDON_12 = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)


class TestValidateMnemonic:
    def test_valid_mnemonic_passes(self):
        core.validate_mnemonic(ABANDON_12)

    def test_word_list_input_passes(self):
        core.validate_mnemonic(ABANDON_12.split())

    def test_case_and_spacing_are_normalized(self):
        core.validate_mnemonic("  " + ABANDON_12.upper().replace(" ", "   ") + "\n")

    def test_wrong_word_count_raises(self):
        with pytest.raises(InvalidMnemonic, match="words"):
            core.validate_mnemonic("abandon abandon abandon")

    def test_unknown_word_raises(self):
        bad = "abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon zzzzz"
        with pytest.raises(ValueError, match="not in the BIP39 wordlist"):
            core.validate_mnemonic(bad)

    def test_checksum_mismatch_raises(self):
        # Replace last word with a valid BIP39 word that gives wrong checksum
        bad = "abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon"
        with pytest.raises(ValueError, match="checksum"):
            core.validate_mnemonic(bad)

    def test_generate_mnemonic_is_valid(self):
        for count in (12, 24):
            phrase = core.generate_mnemonic(count)
            assert len(phrase.split()) == count
            core.validate_mnemonic(phrase)

    def test_generate_mnemonic_rejects_other_counts(self):
        with pytest.raises(InvalidMnemonic):
            core.generate_mnemonic(15)


# ---------------------------------------------------------------------------
# ed25519 accepts hardened segments only
# ---------------------------------------------------------------------------

class TestEd25519HardenedOnly:
    def test_non_hardened_segment_rejected_before_hmac(self, monkeypatch):
        def boom(key, data):
            raise AssertionError("HMAC must not run for an invalid ed25519 path")

        monkeypatch.setattr(core, "hmac_sha512", boom)
        with pytest.raises(InvalidPath, match="hardened"):
            core.derive_key(b"\x00" * 64, "m/44'/501'/0'/0", core.Curve.ED25519)

    def test_ckd_rejects_non_hardened_index(self):
        with pytest.raises(InvalidPath):
            core.ed25519_ckd_priv(b"\x00" * 32, b"\x00" * 32, 0)


# ---------------------------------------------------------------------------
# End-to-end EVM address test vectors
# ---------------------------------------------------------------------------

class TestEVMAddressVector:
    """abandon*11 + about -> 0x9858EfFD232B4033E47d90003D41EC34EcaEda94 (m/44'/60'/0'/0/0)"""

    def test_evm_first_address(self):
        acct = core.derive_evm_addresses(ABANDON_12, "", account=0, start=0, count=1)[0]
        assert acct.path == "m/44'/60'/0'/0/0"
        assert acct.address == "0x9858EfFD232B4033E47d90003D41EC34EcaEda94"

    def test_hardhat_mnemonic_first_two_addresses(self):
        phrase = "test test test test test test test test test test test junk"
        accts = core.derive_evm_addresses(phrase, "", count=2)
        assert [a.address for a in accts] == [
            "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
            "0x70997970C51812dc3A010C7d01b50e0d17dc79C8",
        ]

    def test_hardhat_mnemonic_private_key(self):
        phrase = "test test test test test test test test test test test junk"
        seed = core.mnemonic_to_seed(phrase)
        derived = core.derive_key(seed, core.evm_path(0), core.Curve.SECP256K1)
        assert derived.private_key.hex() == "ac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"


# ---------------------------------------------------------------------------
# Entropy length error message
# ---------------------------------------------------------------------------

class TestErrorMessages:
    def test_entropy_error_shows_sorted_lengths(self):
        with pytest.raises(ValueError, match=r"\[32, 64\]"):
            core.entropy_to_mnemonic("abc")

    def test_redacted_reprs_hide_private_key(self):
        derived = core.derive_key(bytes(range(16)), "m/0'", core.Curve.SECP256K1)
        assert derived.private_key.hex() not in repr(derived)
        kp = core.keypair_from_private_key(derived.private_key)
        assert derived.private_key.hex() not in repr(kp)
