import hashlib
from datetime import datetime, timedelta, timezone

import pytest

from screenflow.errors import EmptyInputError
from screenflow.utils import (
    canonical_json,
    collapse_whitespace,
    content_id,
    format_timestamp,
    parse_iso8601,
    round_half_away,
    stable_screen_id,
)


def test_stable_screen_id_is_deterministic():
    assert stable_screen_id(b"png-bytes", "1.0.0") == stable_screen_id(b"png-bytes", "1.0.0")


def test_stable_screen_id_changes_with_version():
    assert stable_screen_id(b"png-bytes", "1.0.0") != stable_screen_id(b"png-bytes", "1.0.1")


def test_stable_screen_id_matches_separator_layout():
    expected = hashlib.sha256(b"stable-id-v1\x1fpng-bytes\x1f1.0.0").hexdigest()
    screen_id = stable_screen_id(b"png-bytes", "1.0.0")
    assert screen_id == expected
    assert len(screen_id) == 64
    assert screen_id == screen_id.lower()


@pytest.mark.parametrize("data, version", [(b"", "1.0.0"), (b"png", ""), (b"", "")])
def test_stable_screen_id_rejects_empty_input(data, version):
    with pytest.raises(EmptyInputError):
        stable_screen_id(data, version)


def test_content_id_namespaces_do_not_collide():
    assert content_id("ocr-artifact-v1", "a", "b") != content_id("llm-result-v1", "a", "b")


def test_content_id_separator_prevents_run_together():
    assert content_id("ns", "ab", "c") != content_id("ns", "a", "bc")


def test_collapse_whitespace():
    assert collapse_whitespace("  role \n title\t ") == "role title"


@pytest.mark.parametrize(
    "value, places, expected",
    [(0.812345, 4, 0.8123), (0.125, 2, 0.13), (2.5, 0, 3.0), (-2.5, 0, -3.0), (-0.125, 2, -0.13)],
)
def test_round_half_away(value, places, expected):
    assert round_half_away(value, places) == pytest.approx(expected)


def test_canonical_json_sorts_keys_and_keeps_slashes():
    assert canonical_json({"b": "https://x/y", "a": 1}) == '{"a":1,"b":"https://x/y"}'


def test_parse_iso8601_variants():
    plain = parse_iso8601("2026-03-14T18:30:00Z")
    fractional = parse_iso8601("2026-03-14T18:30:00.250Z")
    offset = parse_iso8601("2026-03-14T20:30:00+02:00")
    assert plain == datetime(2026, 3, 14, 18, 30, tzinfo=timezone.utc)
    assert fractional.microsecond == 250000
    assert offset.utcoffset() == timedelta(hours=2)
    assert format_timestamp(offset) == "2026-03-14T18:30:00Z"


@pytest.mark.parametrize("value", ["next friday", "2026-03-14", "2026-13-40T00:00:00Z", ""])
def test_parse_iso8601_rejects_non_dates(value):
    assert parse_iso8601(value) is None


def test_format_timestamp_treats_naive_as_utc():
    assert format_timestamp(datetime(2026, 1, 2, 3, 4, 5)) == "2026-01-02T03:04:05Z"


def test_round_half_away_passes_through_unscalable_values():
    assert round_half_away(1e308, 2) == 1e308
    assert round_half_away(-1e308, 2) == -1e308
