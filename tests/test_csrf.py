from csrf import generate_csrf_token, validate_csrf_token


def test_token_is_bound_to_user() -> None:
    token = generate_csrf_token(1)
    assert validate_csrf_token(token, 1)
    assert not validate_csrf_token(token, 2)


def test_missing_or_tampered_token_is_rejected() -> None:
    assert not validate_csrf_token("", 1)
    assert not validate_csrf_token("not-a-token", 1)
    token = generate_csrf_token(1)
    assert not validate_csrf_token(token[:-2] + "xx", 1)
