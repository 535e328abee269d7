"""Tag definition and utilities."""

from collections.abc import Callable, Iterable

from querytags.types import Tag, TagLike

_ESCAPE_MAP = {"\\": "\\\\", ":": "\\:"}
_UNESCAPE_MAP = {"\\\\": "\\", "\\:": ":"}


def define_tags(
    definitions: dict[str, Callable[..., tuple[str, ...]]],
) -> dict[str, Callable[..., Tag]]:
    """
    Define all tags in a centralized location.

    Example:
        tags = define_tags({
            "products": lambda: ("Products",),
            "product": lambda id: ("Products", id),
            "product_list": lambda: ("Products", "LIST"),
        })

        tags["product"]("42")     # Tag: ("Products", "42")
        tags["product_list"]()    # Tag: ("Products", "LIST")
    """
    result: dict[str, Callable[..., Tag]] = {}
    for name, fn in definitions.items():

        def make_tag(*args: str, _fn: Callable[..., tuple[str, ...]] = fn) -> Tag:
            parts = _fn(*args)
            return Tag(tuple(str(p) for p in parts))

        result[name] = make_tag
    return result


def serialize_tag(tag: Tag) -> str:
    """Serialize a tag tuple to its string form ("Products:42")."""

    def escape(part: str) -> str:
        result = part
        for char, escaped in _ESCAPE_MAP.items():
            result = result.replace(char, escaped)
        return result

    return ":".join(escape(str(p)) for p in tag)


def deserialize_tag(serialized: str) -> Tag:
    """Parse the string form of a tag back to a tuple."""
    parts: list[str] = []
    current = ""
    i = 0

    while i < len(serialized):
        if serialized[i] == "\\":
            if i + 1 < len(serialized):
                escaped = serialized[i : i + 2]
                if escaped in _UNESCAPE_MAP:
                    current += _UNESCAPE_MAP[escaped]
                    i += 2
                    continue
            current += serialized[i]
            i += 1
        elif serialized[i] == ":":
            parts.append(current)
            current = ""
            i += 1
        else:
            current += serialized[i]
            i += 1

    parts.append(current)
    return Tag(tuple(parts))


def to_tag(value: TagLike) -> Tag:
    """Accept either a tuple tag or its string form."""
    if isinstance(value, str):
        return deserialize_tag(value)
    if isinstance(value, tuple):
        if not value:
            raise ValueError("Tag must have at least one segment")
        return Tag(tuple(str(p) for p in value))
    raise TypeError(f"Expected tag tuple or string, got {type(value).__name__}")


def to_tags(values: Iterable[TagLike]) -> frozenset[Tag]:
    """Normalize a collection of tags.

    A bare string counts as a single tag. Any other iterable, tuples
    included, holds one tag per item: ``("Products:LIST",)`` is the tag
    ``("Products", "LIST")``, not a one-segment tag.
    """
    if isinstance(values, str):
        return frozenset({to_tag(values)})
    return frozenset(to_tag(v) for v in values)


def is_tag_prefix(parent: Tag, child: Tag) -> bool:
    """Check if parent is a prefix of child (for invalidation)."""
    if len(parent) > len(child):
        return False
    return child[: len(parent)] == parent
