from sidebyside.core import security


def test_access_token_round_trip():
    token = security.create_access_token("u1", "a@example.com")
    payload = security.decode_access_token(token)

    assert payload["userId"] == "u1"
    assert payload["email"] == "a@example.com"
    assert payload["type"] == "access"


def test_token_types_are_not_interchangeable():
    refresh = security.create_refresh_token("s1", "u1")

    assert security.decode_access_token(refresh) is None
    assert security.decode_refresh_token(refresh)["sessionId"] == "s1"
    assert security.decode_refresh_token("not.a.jwt") is None


def test_token_hash_verification():
    token = security.generate_magic_token()
    digest = security.hash_token(token)

    assert len(token) == 64
    assert security.verify_token(token, digest)
    assert not security.verify_token(token + "x", digest)


def test_figma_code_format():
    code = security.generate_figma_code()

    assert code.startswith("FGM-")
    assert len(code) == 10
    assert all(c in security.FIGMA_CODE_ALPHABET for c in code[4:])
