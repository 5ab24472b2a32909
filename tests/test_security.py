from nexus_news.security import compute_signature, verify_request, verify_signature

SECRET = "8f742231b10e8888abcd99yyyzzz85a5"
BODY = "token=xyz&team_id=T0001&user_id=U12345678&text=category%3Atechnology"
NOW = 1_760_000_000


def _mutate(text: str, idx: int) -> str:
    ch = text[idx]
    replacement = "a" if ch != "a" else "b"
    return text[:idx] + replacement + text[idx + 1 :]


def test_signature_round_trip_verifies() -> None:
    ts = str(NOW)
    sig = compute_signature(SECRET, ts, BODY)
    assert sig.startswith("v0=")
    assert verify_signature(SECRET, BODY, ts, sig, now=NOW)
    assert verify_signature(SECRET, BODY.encode("utf-8"), ts, sig, now=NOW)


def test_known_slack_example_signature() -> None:
    # Example from Slack's request signing documentation.
    body = (
        "token=xyzz0WbapA4vBCDEFasx0q6G&team_id=T1DC2JH3J&team_domain=testteamnow&channel_id=G8PSS9T3V"
        "&channel_name=foobar&user_id=U2CERLKJA&user_name=roadrunner&command=%2Fwebhook-collect&text="
        "&response_url=https%3A%2F%2Fhooks.slack.com%2Fcommands%2FT1DC2JH3J%2F397700885554%2F96rGlfmibIGlgcZRskXaIFfN"
        "&trigger_id=398738663015.47445629121.803a0bc887a14d10d2c447fce8b6703c"
    )
    signature = "v0=a2114d57b48eac39b9ad189dd8316235a7b4a8d21a10bd27519666489c69b503"
    assert compute_signature("8f742231b10e8888abcd99yyyzzz85a5", "1531420618", body) == signature


def test_single_byte_mutations_fail() -> None:
    ts = str(NOW)
    sig = compute_signature(SECRET, ts, BODY)
    for idx in (0, len(BODY) // 2, len(BODY) - 1):
        assert not verify_signature(SECRET, _mutate(BODY, idx), ts, sig, now=NOW)
    for idx in range(3, len(sig)):
        assert not verify_signature(SECRET, BODY, ts, _mutate(sig, idx), now=NOW)
    mutated_ts = str(NOW + 1)
    assert not verify_signature(SECRET, BODY, mutated_ts, sig, now=NOW)


def test_stale_timestamp_rejected_even_with_valid_signature() -> None:
    old = str(NOW - 301)
    sig = compute_signature(SECRET, old, BODY)
    assert not verify_signature(SECRET, BODY, old, sig, now=NOW)

    future = str(NOW + 301)
    assert not verify_signature(SECRET, BODY, future, compute_signature(SECRET, future, BODY), now=NOW)

    edge = str(NOW - 300)
    assert verify_signature(SECRET, BODY, edge, compute_signature(SECRET, edge, BODY), now=NOW)


def test_non_numeric_timestamp_rejected() -> None:
    sig = compute_signature(SECRET, "abc", BODY)
    assert not verify_signature(SECRET, BODY, "abc", sig, now=NOW)


def test_verify_request_requires_secret_and_headers() -> None:
    ts = str(NOW)
    headers = {"X-Slack-Request-Timestamp": ts, "X-Slack-Signature": compute_signature(SECRET, ts, BODY)}
    assert verify_request(headers, BODY, SECRET, now=NOW)
    assert not verify_request(headers, BODY, "", now=NOW)
    assert not verify_request(headers, BODY, None, now=NOW)
    assert not verify_request({"X-Slack-Signature": headers["X-Slack-Signature"]}, BODY, SECRET, now=NOW)
    assert not verify_request({"X-Slack-Request-Timestamp": ts}, BODY, SECRET, now=NOW)


def test_verify_request_header_lookup_is_case_insensitive() -> None:
    ts = str(NOW)
    headers = {"x-slack-request-timestamp": ts, "x-slack-signature": compute_signature(SECRET, ts, BODY)}
    assert verify_request(headers, BODY, SECRET, now=NOW)
