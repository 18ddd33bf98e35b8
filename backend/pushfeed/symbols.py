"""Symbol argument normalization and the symbol attribute mini-format.

A symbol may carry attributes in a ``{key=value,...}`` suffix, e.g.
``AAPL{=d,price=mark}``. Keys are kept in ascending order and the suffix is
elided entirely when no attributes remain. A trailing empty ``{}`` is not an
attribute list; it is part of the base symbol.
"""

from __future__ import annotations

from collections.abc import Iterable


def normalize_symbols(*args: str | Iterable[str]) -> list[str]:
    """Flatten strings and iterables of strings into one list, in order."""
    result: list[str] = []
    for arg in args:
        if isinstance(arg, str):
            result.append(arg)
        else:
            result.extend(arg)
    return result


def _attributes_start(symbol: str) -> int:
    """Index of the opening brace of the attribute suffix, or len(symbol)."""
    if len(symbol) < 3 or not symbol.endswith("}"):
        return len(symbol)
    i = symbol.rfind("{")
    return len(symbol) if i < 0 or i >= len(symbol) - 2 else i


def _split(symbol: str) -> tuple[str, list[tuple[str, str]]]:
    start = _attributes_start(symbol)
    if start == len(symbol):
        return symbol, []
    pairs = []
    for part in symbol[start + 1 : -1].split(","):
        key, sep, value = part.partition("=")
        if not sep:
            # Not a key=value list after all
            return symbol, []
        pairs.append((key, value))
    return symbol[:start], pairs


def base_symbol(symbol: str) -> str:
    """Symbol without its attribute suffix."""
    return _split(symbol)[0]


def get_attribute(symbol: str, key: str) -> str | None:
    """Value of an attribute, or None if the symbol does not carry it."""
    for cur, value in _split(symbol)[1]:
        if cur == key:
            return value
    return None


def change_attribute(symbol: str, key: str, value: str | None) -> str:
    """Set (value given) or remove (value None) one attribute of a symbol.

    >>> change_attribute("IBM", "price", "bid")
    'IBM{price=bid}'
    >>> change_attribute("IBM{=d,price=bid}", "price", None)
    'IBM{=d}'
    """
    base, pairs = _split(symbol)
    attrs = dict(pairs)
    if value is None:
        if key not in attrs:
            return symbol
        del attrs[key]
    else:
        attrs[key] = str(value)
    if not attrs:
        return base
    return base + "{" + ",".join(f"{k}={v}" for k, v in sorted(attrs.items())) + "}"
