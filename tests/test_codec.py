"""Tests for the cache value codec."""

import pytest

from wademo.cache.codec import TEXT_MARKER, decode, encode


class TestEncode:

    def test_text_is_tagged(self):
        assert encode("John Doe") == TEXT_MARKER + "John Doe"

    def test_numbers_stay_bare_json(self):
        assert encode(1000) == "1000"
        assert encode(2.5) == "2.5"

    def test_structured_values_are_compact_json(self):
        assert encode({"id": 123, "tags": ["a", "b"]}) == '{"id":123,"tags":["a","b"]}'

    def test_non_ascii_text_is_kept_readable(self):
        assert encode({"name": "张三"}) == '{"name":"张三"}'

    def test_unserializable_value_raises(self):
        with pytest.raises(TypeError):
            encode(b"raw bytes")


class TestDecode:

    @pytest.mark.parametrize("value", [
        "plain text",
        "",
        "123",
        '{"looks": "like json"}',
        "~starts with the marker",
        42,
        -3.75,
        True,
        None,
        [1, "two", None],
        {"user": {"id": 123, "roles": ["admin"]}, "active": False},
    ])
    def test_round_trip(self, value):
        assert decode(encode(value)) == value

    def test_json_looking_text_stays_text(self):
        decoded = decode(encode("true"))
        assert decoded == "true"
        assert isinstance(decoded, str)

    def test_untagged_json_from_other_clients_is_parsed(self):
        assert decode('{"id": 1}') == {"id": 1}
        assert decode("1001") == 1001

    def test_untagged_plain_text_is_returned_unchanged(self):
        assert decode("John Doe") == "John Doe"
        assert decode("{broken") == "{broken"

    def test_tuples_come_back_as_lists(self):
        assert decode(encode((1, 2))) == [1, 2]
