"""Document actions requested by the model.

Actions arrive as a loosely typed ``(name, params)`` pair. ``parse_action``
turns them into a closed set of variants; names the client does not know
become ``UnrecognizedAction`` so new server-side tools never break an older
client.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class _Action(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class AddComponent(_Action):
    """Place a new component in the current container."""

    component_type: str = Field(
        min_length=1,
        validation_alias=AliasChoices("comp_type", "componentType", "component_type"),
    )
    name: str | None = None
    props: dict[str, Any] | None = None
    x: int | None = None
    y: int | None = None
    w: int | None = None
    h: int | None = None


class RemoveComponent(_Action):
    """Remove a component from the current container by display name."""

    name: str = Field(min_length=1)


class UnrecognizedAction(_Action):
    """An action this client cannot perform."""

    name: str
    params: dict[str, Any] = Field(default_factory=dict)


Action = AddComponent | RemoveComponent | UnrecognizedAction

ADD_COMPONENT = "add_component"
REMOVE_COMPONENT = "remove_component"


def parse_action(name: str, params: dict[str, Any] | None) -> Action:
    """Build the typed action for ``name``.

    Raises:
        pydantic.ValidationError: If ``name`` is known but ``params`` do not fit.
    """
    params = params or {}
    if name == ADD_COMPONENT:
        return AddComponent.model_validate(params)
    if name == REMOVE_COMPONENT:
        return RemoveComponent.model_validate(params)
    return UnrecognizedAction(name=name, params=params)


def action_name(action: Action) -> str:
    if isinstance(action, AddComponent):
        return ADD_COMPONENT
    if isinstance(action, RemoveComponent):
        return REMOVE_COMPONENT
    return action.name


__all__ = [
    "ADD_COMPONENT",
    "REMOVE_COMPONENT",
    "Action",
    "AddComponent",
    "RemoveComponent",
    "UnrecognizedAction",
    "action_name",
    "parse_action",
]
