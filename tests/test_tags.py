"""Tests for tag utilities."""

import pytest

from querytags import Tag, define_tags, deserialize_tag, serialize_tag
from querytags.tags import is_tag_prefix, to_tag, to_tags


class TestDefineTags:
    """Tests for define_tags function."""

    def test_parameterized_tag(self) -> None:
        """Test a tag with a parameter."""
        tags = define_tags({"product": lambda id: ("Products", id)})
        assert tags["product"]("42") == ("Products", "42")

    def test_parameterless_tag(self) -> None:
        """Test a tag without parameters."""
        tags = define_tags({"product_list": lambda: ("Products", "LIST")})
        assert tags["product_list"]() == ("Products", "LIST")

    def test_segments_become_strings(self) -> None:
        """Test that tag segments are converted to strings."""
        tags = define_tags({"product": lambda id: ("Products", id)})
        assert tags["product"](42) == ("Products", "42")


class TestSerializeTag:
    """Tests for serialize_tag / deserialize_tag."""

    def test_simple_tag(self) -> None:
        """Test serializing a two-part tag."""
        assert serialize_tag(Tag(("Products", "42"))) == "Products:42"

    def test_single_part(self) -> None:
        """Test serializing a one-part tag."""
        assert serialize_tag(Tag(("Products",))) == "Products"

    def test_escape_colon(self) -> None:
        """Test that colons inside segments are escaped."""
        serialized = serialize_tag(Tag(("key:with:colons", "value")))
        assert "\\:" in serialized
        assert deserialize_tag(serialized) == ("key:with:colons", "value")

    def test_escape_backslash(self) -> None:
        """Test that backslashes survive a round trip."""
        original = Tag(("key\\with\\backslash", "value"))
        assert deserialize_tag(serialize_tag(original)) == original

    def test_deserialize(self) -> None:
        """Test parsing the string form."""
        assert deserialize_tag("Products:LIST") == ("Products", "LIST")
        assert deserialize_tag("Users") == ("Users",)


class TestToTags:
    """Tests for tag normalization."""

    def test_string_form(self) -> None:
        """Test normalizing the string form."""
        assert to_tag("Products:42") == ("Products", "42")

    def test_tuple_form(self) -> None:
        """Test normalizing the tuple form."""
        assert to_tag(("Products", 42)) == ("Products", "42")  # type: ignore[arg-type]

    def test_empty_tuple_rejected(self) -> None:
        """Test that an empty tag is rejected."""
        with pytest.raises(ValueError):
            to_tag(())

    def test_wrong_type_rejected(self) -> None:
        """Test that non-tag values raise TypeError."""
        with pytest.raises(TypeError):
            to_tag(42)  # type: ignore[arg-type]

    def test_collection(self) -> None:
        """Test normalizing a mixed collection."""
        assert to_tags(["Products", ("Users",)]) == {("Products",), ("Users",)}

    def test_bare_string_is_one_tag(self) -> None:
        """Test that a bare string is a single tag."""
        assert to_tags("Products") == {("Products",)}

    def test_tuple_of_strings_is_a_collection(self) -> None:
        """Test that a tuple of strings holds one tag per item."""
        assert to_tags(("Products", "Users")) == {("Products",), ("Users",)}

    def test_string_items_of_a_tuple_are_parsed(self) -> None:
        """Test that string items of a tuple are parsed on colons."""
        assert to_tags(("Products:LIST",)) == {("Products", "LIST")}

    def test_tuple_of_tags(self) -> None:
        """Test a tuple of tag tuples."""
        assert to_tags((("Products",), ("Users",))) == {("Products",), ("Users",)}


class TestIsTagPrefix:
    """Tests for is_tag_prefix function."""

    def test_exact_match(self) -> None:
        """Test that a tag is its own prefix."""
        assert is_tag_prefix(Tag(("Products", "1")), Tag(("Products", "1"))) is True

    def test_prefix_match(self) -> None:
        """Test a parent prefix."""
        assert is_tag_prefix(Tag(("Products",)), Tag(("Products", "LIST"))) is True

    def test_different_values(self) -> None:
        """Test that siblings are not prefixes."""
        assert is_tag_prefix(Tag(("Products", "1")), Tag(("Products", "2"))) is False

    def test_longer_parent(self) -> None:
        """Test that a longer tag is not a prefix."""
        assert is_tag_prefix(Tag(("Products", "1")), Tag(("Products",))) is False
