from ranaojobs.core.telemetry import parse_headers


def test_parse_headers_splits_pairs_and_trims() -> None:
    assert parse_headers(" authorization = Bearer abc ,x-team=jobs") == {
        "authorization": "Bearer abc",
        "x-team": "jobs",
    }


def test_parse_headers_skips_malformed_items() -> None:
    assert parse_headers("novalue,=empty-key,ok=1") == {"ok": "1"}
    assert parse_headers(None) == {}
