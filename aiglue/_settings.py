# Copyright (c) Microsoft. All rights reserved.

"""Settings loader for the vendor adapters.

Each adapter describes its settings as a ``TypedDict`` and resolves them with
``load_settings()``::

    class OllamaSettings(TypedDict, total=False):
        host: str | None
        model_id: str | None


    settings = load_settings(OllamaSettings, env_prefix="OLLAMA_", required_fields=["model_id"])

Values come from explicit keyword overrides first, then ``<PREFIX><FIELD>`` environment
variables, then a ``.env`` file, then class level defaults on the TypedDict.
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from contextlib import suppress
from typing import Any, TypeVar, Union, get_args, get_origin, get_type_hints

from dotenv import load_dotenv

from .exceptions import ServiceInitializationError, SettingNotFoundError

__all__ = ["SecretString", "load_settings"]

SettingsT = TypeVar("SettingsT")

_TRUE_VALUES = ("true", "1", "yes", "on")


class SecretString(str):
    """A string whose repr() is masked so keys and tokens do not end up in logs.

    Example:
        ```python
        key = SecretString("my-key")
        print(key)  # my-key
        print(repr(key))  # SecretString('**********')
        ```
    """

    def __repr__(self) -> str:
        return "SecretString('**********')"

    def get_secret_value(self) -> str:
        """Return the plain string value."""
        return str(self)


def _non_none_args(annotation: Any) -> tuple[Any, ...]:
    origin = get_origin(annotation)
    if origin is Union or origin is type(int | str):
        return tuple(arg for arg in get_args(annotation) if arg is not type(None))
    return (annotation,)


def _coerce_value(value: str, annotation: Any) -> Any:
    """Convert an environment string to the annotated type."""
    for target in _non_none_args(annotation):
        if isinstance(target, type) and issubclass(target, SecretString):
            return SecretString(value)
        if target is bool:
            return value.lower() in _TRUE_VALUES
        if target in (int, float):
            with suppress(ValueError):
                return target(value)
            continue
        if target is str:
            return value
    return value


def _check_override(name: str, value: Any, annotation: Any) -> Any:
    """Validate an explicit override and wrap plain strings for secret fields."""
    if callable(value) and not isinstance(value, (str, bytes)):
        return value
    allowed = tuple(arg for arg in _non_none_args(annotation) if isinstance(arg, type))
    if not allowed:
        return value
    if isinstance(value, str) and any(issubclass(arg, str) for arg in allowed):
        if any(issubclass(arg, SecretString) for arg in allowed) and not isinstance(value, SecretString):
            return SecretString(value)
        return value
    if isinstance(value, int) and float in allowed:
        return value
    if not isinstance(value, allowed):
        names = ", ".join(arg.__name__ for arg in allowed)
        raise ServiceInitializationError(
            f"Invalid type for setting '{name}': expected {names}, got {type(value).__name__}."
        )
    return value


def _validate_required(
    result: dict[str, Any], required_fields: Sequence[str | tuple[str, ...]], env_prefix: str
) -> None:
    for entry in required_fields:
        if isinstance(entry, str):
            if result.get(entry) is None:
                raise SettingNotFoundError(
                    f"Required setting '{entry}' was not provided. Set it via the '{entry}' parameter "
                    f"or the '{env_prefix}{entry.upper()}' environment variable."
                )
            continue
        present = [field for field in entry if result.get(field) is not None]
        names = ", ".join(f"'{field}'" for field in entry)
        if not present:
            raise SettingNotFoundError(f"Exactly one of {names} must be provided, but none was set.")
        if len(present) > 1:
            raise SettingNotFoundError(f"Only one of {names} may be provided, but multiple were set.")


def load_settings(
    settings_type: type[SettingsT],
    *,
    env_prefix: str = "",
    env_file_path: str | None = None,
    env_file_encoding: str | None = None,
    required_fields: Sequence[str | tuple[str, ...]] | None = None,
    **overrides: Any,
) -> SettingsT:
    """Resolve a settings ``TypedDict`` from overrides, environment variables and a ``.env`` file.

    Args:
        settings_type: The ``TypedDict`` class describing the settings.
        env_prefix: Prefix for environment variable names, e.g. ``"BEDROCK_"``.
        env_file_path: Path of the ``.env`` file, defaults to ``".env"``.
        env_file_encoding: Encoding of the ``.env`` file, defaults to ``"utf-8"``.
        required_fields: Field names that must resolve to a value, or tuples of
            names of which exactly one must be set.
        **overrides: Explicit values; ``None`` values are ignored.

    Returns:
        A populated dict matching ``settings_type``.

    Raises:
        SettingNotFoundError: A required field could not be resolved.
        ServiceInitializationError: An override has an incompatible type.
    """
    env_path = env_file_path or ".env"
    if os.path.isfile(env_path):
        load_dotenv(dotenv_path=env_path, encoding=env_file_encoding or "utf-8")

    given = {key: value for key, value in overrides.items() if value is not None}
    result: dict[str, Any] = {}
    for name, annotation in get_type_hints(settings_type).items():
        if name in given:
            result[name] = _check_override(name, given[name], annotation)
            continue
        env_value = os.getenv(f"{env_prefix}{name.upper()}")
        if env_value is not None:
            result[name] = _coerce_value(env_value, annotation)
            continue
        result[name] = getattr(settings_type, name, None)

    if required_fields:
        _validate_required(result, required_fields, env_prefix)
    return result  # type: ignore[return-value]
