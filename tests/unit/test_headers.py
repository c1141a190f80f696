"""
Unit tests for Headers and HeadersBuilder.
"""

import pytest

from actionserver.errors import ValueCountError
from actionserver.http.headers import HeaderName, Headers, HeadersBuilder


class TestHeadersBuilder:
    """Tests for building headers."""

    def test_add_appends_values_in_order(self):
        """Test that repeated add() keeps every value in order."""
        headers = HeadersBuilder().add("Accept", "text/plain").add("Accept", "text/html").build()

        assert headers.get("Accept") == ("text/plain", "text/html")

    def test_add_all(self):
        """Test adding a batch of values."""
        headers = HeadersBuilder().add("X-A", "1").add_all("X-A", ["2", "3"]).build()

        assert headers.get("X-A") == ("1", "2", "3")

    def test_add_all_empty_batch_creates_no_key(self):
        """Test that an empty batch does not create the header."""
        headers = HeadersBuilder().add_all("X-Empty", []).build()

        assert not headers.contains("X-Empty")
        assert headers.size() == 0

    def test_set_replaces_all_values(self):
        """Test that set() leaves exactly one value."""
        headers = (HeadersBuilder()
            .add("X-A", "1")
            .add("X-A", "2")
            .set("X-A", "3")
            .build())

        assert headers.get("X-A") == ("3",)

    def test_remove_deletes_key(self):
        """Test that remove() deletes the header entirely."""
        headers = HeadersBuilder().add("X-A", "1").remove("X-A").build()

        assert "X-A" not in headers
        assert headers.get("X-A") == ()

    def test_remove_absent_is_noop(self):
        """Test removing a header that was never added."""
        headers = HeadersBuilder().add("X-A", "1").remove("X-B").build()

        assert headers.names() == ["X-A"]

    def test_build_copies(self):
        """Test that later builder changes do not leak into built headers."""
        builder = HeadersBuilder().add("X-A", "1")
        first = builder.build()
        builder.add("X-A", "2").add("X-B", "3")

        assert first.get("X-A") == ("1",)
        assert "X-B" not in first

    def test_insertion_order_preserved(self):
        """Test that names come back in the order they were first added."""
        headers = HeadersBuilder().add("B", "1").add("A", "2").add("C", "3").build()

        assert list(headers) == ["B", "A", "C"]


class TestHeaders:
    """Tests for Headers lookups."""

    def test_get_missing_returns_empty_tuple(self):
        """Test get() on an unset header."""
        assert Headers.empty().get("Content-Type") == ()

    def test_get_only_single_value(self):
        """Test get_only() with exactly one value."""
        headers = Headers.builder().add(HeaderName.CONTENT_TYPE, "text/plain").build()

        assert headers.get_only(HeaderName.CONTENT_TYPE) == "text/plain"

    def test_get_only_missing_raises(self):
        """Test get_only() with no value."""
        with pytest.raises(ValueCountError) as exc_info:
            Headers.empty().get_only("X-Missing")

        assert exc_info.value.count == 0

    def test_get_only_multiple_raises(self):
        """Test get_only() with two values."""
        headers = Headers.builder().add("Accept", "a").add("Accept", "b").build()

        with pytest.raises(ValueCountError) as exc_info:
            headers.get_only("Accept")

        assert exc_info.value.count == 2
        assert isinstance(exc_info.value, ValueError)

    def test_names_are_exact_match(self):
        """Test that header names are case-sensitive."""
        headers = Headers.builder().add("Content-Type", "text/plain").build()

        assert headers.contains("Content-Type")
        assert not headers.contains("content-type")

    def test_contains_value_string(self):
        """Test contains_value() with a single string."""
        headers = (Headers.builder()
            .add(HeaderName.ACCESS_CONTROL_ALLOW_ORIGIN, "*")
            .add("Accept", "a")
            .add("Accept", "b")
            .build())

        assert headers.contains_value("*")
        assert not headers.contains_value("a")  # "Accept" has two values

    def test_contains_value_sequence(self):
        """Test contains_value() with a full value list."""
        headers = Headers.builder().add("Accept", "a").add("Accept", "b").build()

        assert headers.contains_value(["a", "b"])
        assert not headers.contains_value(["b", "a"])

    def test_size_counts_names(self):
        """Test that size() counts names, not values."""
        headers = Headers.builder().add("A", "1").add("A", "2").add("B", "3").build()

        assert headers.size() == 2
        assert len(headers) == 2

    def test_to_builder_roundtrip(self):
        """Test that to_builder() starts from a copy."""
        original = Headers.builder().add("A", "1").build()
        changed = original.to_builder().add("A", "2").build()

        assert original.get("A") == ("1",)
        assert changed.get("A") == ("1", "2")
        assert original.to_builder().build() == original

    def test_to_dict_is_a_copy(self):
        """Test that mutating to_dict() output leaves headers alone."""
        headers = Headers.builder().add("A", "1").build()
        data = headers.to_dict()
        data["A"].append("2")

        assert headers.get("A") == ("1",)

    def test_getitem(self):
        """Test mapping-style access."""
        headers = Headers.builder().add("A", "1").build()

        assert headers["A"] == ("1",)
        with pytest.raises(KeyError):
            headers["B"]

    def test_constructor_drops_empty_lists(self):
        """Test that no key maps to an empty value list."""
        headers = Headers({"A": ["1"], "B": []})

        assert headers.names() == ["A"]
