"""Tests for shared utilities."""

import logging
import uuid

from common.utils import (
    SLUG_ALPHABET,
    generate_slug,
    generate_snowflake_id,
    safe_dispatch,
    uuid7,
)


class TestUuid7:
    """Tests for uuid7()."""

    def test_version_and_variant(self):
        value = uuid7()
        assert value.version == 7
        assert value.variant == uuid.RFC_4122

    def test_unique(self):
        assert len({uuid7() for _ in range(100)}) == 100


class TestGenerateSlug:
    """Tests for generate_slug()."""

    def test_default_length(self):
        assert len(generate_slug()) == 6

    def test_custom_length(self):
        assert len(generate_slug(10)) == 10

    def test_alphabet(self):
        slug = generate_slug(50)
        assert set(slug) <= set(SLUG_ALPHABET)


class TestGenerateSnowflakeId:
    """Tests for generate_snowflake_id()."""

    def test_is_decimal_string(self):
        value = generate_snowflake_id()
        assert isinstance(value, str)
        assert value.isdigit()

    def test_fits_in_signed_64_bits(self):
        assert int(generate_snowflake_id()) < 2**63

    def test_roughly_time_ordered(self):
        first = int(generate_snowflake_id()) >> 22
        second = int(generate_snowflake_id()) >> 22
        assert second >= first


class TestSafeDispatch:
    """Tests for safe_dispatch()."""

    def test_swallows_and_logs_exception(self, caplog):
        logger = logging.getLogger("test.safe_dispatch")
        with caplog.at_level(logging.ERROR, logger="test.safe_dispatch"):
            with safe_dispatch("do something", logger):
                raise RuntimeError("boom")
        assert "Failed to do something: boom" in caplog.text

    def test_passes_through_without_error(self):
        calls = []
        with safe_dispatch("append"):
            calls.append(1)
        assert calls == [1]
