import pytest

from socialflow.infrastructure.token_cipher import (
    CipherConfigurationError,
    IV_BYTES,
    TokenCipher,
    TokenDecryptionError,
)


def test_round_trip():
    cipher = TokenCipher("unit-test-key")
    ciphertext = cipher.encrypt("oauth-access-token")
    assert ciphertext != "oauth-access-token"
    assert cipher.decrypt(ciphertext) == "oauth-access-token"


def test_round_trip_unicode():
    cipher = TokenCipher("unit-test-key")
    assert cipher.decrypt(cipher.encrypt("tökén ✓")) == "tökén ✓"


def test_fresh_iv_per_call():
    cipher = TokenCipher("unit-test-key")
    first = cipher.encrypt("same")
    second = cipher.encrypt("same")
    assert first != second
    assert first.split(":")[0] != second.split(":")[0]
    assert cipher.decrypt(first) == cipher.decrypt(second) == "same"


def test_output_format():
    iv_hex, ct_hex = TokenCipher("unit-test-key").encrypt("x").split(":")
    assert len(bytes.fromhex(iv_hex)) == IV_BYTES
    bytes.fromhex(ct_hex)


def test_other_key_cannot_decrypt():
    ciphertext = TokenCipher("key-one").encrypt("secret")
    with pytest.raises(TokenDecryptionError):
        TokenCipher("key-two").decrypt(ciphertext)


@pytest.mark.parametrize(
    "malformed",
    ["", "no-delimiter", "zz:abcd", "abcd:abcd", "00" * IV_BYTES + ":00ff"],
)
def test_malformed_ciphertext(malformed):
    with pytest.raises(TokenDecryptionError):
        TokenCipher("unit-test-key").decrypt(malformed)


@pytest.mark.parametrize("secret", [None, ""])
def test_missing_key_fails_fast(secret):
    with pytest.raises(CipherConfigurationError):
        TokenCipher(secret)


def test_optional_helpers_pass_none_through():
    cipher = TokenCipher("unit-test-key")
    assert cipher.encrypt_optional(None) is None
    assert cipher.decrypt_optional(None) is None
    assert cipher.decrypt_optional(cipher.encrypt_optional("v")) == "v"
