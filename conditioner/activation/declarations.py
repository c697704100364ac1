"""Activation layer — Target and candidate declarations.

Declarations are the input of :meth:`conditioner.engine.Conditioner.load`.
They can be built directly, from plain dicts, or parsed from the compact
string forms used in markup-style configuration:

Single candidate::

    parse_declaration(target, "app.ui.Map", conditions="flag:{maps}",
                      options='{"zoom": 4}')

Multiple candidates (JSON list, ``path`` is accepted for ``locator``)::

    parse_declaration(target, '''[
        {"path": "app.ui.Map", "conditions": "flag:{maps}"},
        {"path": "app.ui.StaticMap"}
    ]''')
"""

from __future__ import annotations

import json
from typing import Any, Mapping

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from conditioner.exceptions import DeclarationError


def parse_options(raw: Any) -> dict[str, Any]:
    """Return *raw* as an options dict.  Strings are parsed as JSON objects.

    Raises:
        DeclarationError: *raw* is not a mapping, None, or a JSON object string.
    """
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise DeclarationError(f"Options are not valid JSON: {exc.msg}", raw=raw) from exc
        if not isinstance(parsed, dict):
            raise DeclarationError("Options must be a JSON object", raw=raw)
        return parsed
    raise DeclarationError(f"Options must be a mapping or JSON string, got {type(raw).__name__}", raw=raw)


class CandidateDeclaration(BaseModel):
    """One candidate implementation for a target."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    locator: str = Field(
        min_length=1,
        validation_alias=AliasChoices("locator", "path"),
        description="Implementation locator or alias.",
    )
    conditions: str | None = Field(
        default=None,
        description="Condition expression; None means always suitable.",
    )
    options: dict[str, Any] = Field(default_factory=dict)
    priority: int = 0

    @field_validator("options", mode="before")
    @classmethod
    def parse_options_string(cls, v: Any) -> Any:
        if isinstance(v, str):
            try:
                return parse_options(v)
            except DeclarationError as exc:
                raise ValueError(exc.message) from exc
        return {} if v is None else v


class TargetDeclaration(BaseModel):
    """A managed target and its ordered candidates."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    target: Any
    candidates: list[CandidateDeclaration] = Field(min_length=1)
    priority: int = 0

    @field_validator("target")
    @classmethod
    def target_required(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("target is required")
        return v


def coerce_declaration(raw: TargetDeclaration | Mapping[str, Any]) -> TargetDeclaration:
    """Validate a dict into a :class:`TargetDeclaration`."""
    if isinstance(raw, TargetDeclaration):
        return raw
    try:
        return TargetDeclaration.model_validate(raw)
    except ValidationError as exc:
        raise DeclarationError(f"Invalid target declaration: {exc}", raw=raw) from exc


def parse_declaration(
    target: Any,
    source: str,
    *,
    conditions: str | None = None,
    options: Any = None,
    priority: int = 0,
) -> TargetDeclaration:
    """Parse the compact string form into a :class:`TargetDeclaration`.

    *source* is either a single locator (combined with *conditions* and
    *options*) or a JSON list of candidate objects.
    """
    if not source or not source.strip():
        raise DeclarationError("Declaration is empty", raw=source)
    text = source.strip()
    if text.startswith("["):
        try:
            entries = json.loads(text)
        except json.JSONDecodeError as exc:
            raise DeclarationError(f"Candidate list is not valid JSON: {exc.msg}", raw=source) from exc
        if not isinstance(entries, list):
            raise DeclarationError("Candidate list must be a JSON array", raw=source)
        candidates: list[Any] = entries
    else:
        candidates = [{"locator": text, "conditions": conditions, "options": parse_options(options)}]
    return coerce_declaration({"target": target, "candidates": candidates, "priority": priority})
