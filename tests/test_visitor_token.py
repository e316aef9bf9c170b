from utils.referral import RefLink, VisitorToken


def test_issued_token_verifies():
    tokens = VisitorToken("secret")
    token = tokens.issue()
    visitor_id = tokens.verify(token)
    assert visitor_id
    assert token.startswith(visitor_id + ".")


def test_tampered_tokens_are_refused():
    tokens = VisitorToken("secret")
    visitor_id, signature = tokens.issue().rsplit(".", 1)
    assert tokens.verify(f"someone-else.{signature}") is None
    assert tokens.verify(visitor_id) is None
    assert tokens.verify("") is None
    assert tokens.verify(None) is None
    assert VisitorToken("other-secret").verify(f"{visitor_id}.{signature}") is None


def test_ref_code_shape():
    code = RefLink().generate_ref_code("user-abcd1234", "dewi")
    assert code[:3] == "DEW"
    assert code[-4:] == "1234"
    assert code[3:6].isalnum() and code[3:6].upper() == code[3:6]
