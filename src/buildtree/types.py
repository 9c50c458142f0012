"""Task argument types backed by click parameter types."""

from __future__ import annotations

import click

_CLICK_TYPES: dict[str, click.ParamType] = {
    "str": click.STRING,
    "int": click.INT,
    "float": click.FLOAT,
    "bool": click.BOOL,
    "path": click.Path(),
}

ARG_TYPES = tuple(_CLICK_TYPES)


def get_click_type(arg_type: str) -> click.ParamType:
    """Return the click type used to convert values of ``arg_type``.

    Raises:
        ValueError: If the type name is unknown
    """
    try:
        return _CLICK_TYPES[arg_type]
    except KeyError:
        raise ValueError(
            f"Unknown argument type '{arg_type}'. Valid types: {', '.join(ARG_TYPES)}"
        ) from None
