"""Action executor: apply model-requested actions to a document.

Each action becomes exactly one combined ``ContainerMutation`` so a layout
cell and its component always commit together. Failures are reported as
values (``ActionFailure``); the conversation keeps going.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

from pydantic import ValidationError

from src.document.actions import (
    AddComponent,
    RemoveComponent,
    UnrecognizedAction,
    action_name,
    parse_action,
)
from src.document.model import ComponentDescriptor, ContainerMutation, LayoutCell
from src.exceptions import ActionError, DocumentError

if TYPE_CHECKING:
    from src.document.actions import Action
    from src.document.model import DocumentHandle

logger = logging.getLogger(__name__)

DEFAULT_X = 0
DEFAULT_W = 12
DEFAULT_H = 5
ROW_STEP = 5


@dataclass(frozen=True)
class MutationSummary:
    """A successfully applied action."""

    action: str
    label: str
    component_id: str

    @property
    def line(self) -> str:
        return f"\n+ {self.action}: {self.label}"


@dataclass(frozen=True)
class ActionFailure:
    """An action that could not be applied; the document is unchanged."""

    action: str
    reason: str

    @property
    def line(self) -> str:
        return f"\n! {self.action} failed: {self.reason}"


class _Noop:
    def __repr__(self) -> str:
        return "NOOP"


NOOP: Final = _Noop()

ApplyResult = MutationSummary | ActionFailure | _Noop


def default_layout(action: AddComponent, existing_cells: int) -> tuple[int, int, int, int]:
    """Stack new components under the existing ones, full half-width.

    Explicit coordinates override their default one by one.
    """
    x = action.x if action.x is not None else DEFAULT_X
    y = action.y if action.y is not None else existing_cells * ROW_STEP
    w = action.w if action.w is not None else DEFAULT_W
    h = action.h if action.h is not None else DEFAULT_H
    return x, y, w, h


def generate_name(document: DocumentHandle, component_type: str) -> str:
    """Return ``<type><n>`` for the lowest n >= 1 not used anywhere in the document."""
    n = 1
    while document.name_exists(f"{component_type}{n}"):
        n += 1
    return f"{component_type}{n}"


class ActionExecutor:
    """Applies parsed actions to a document handle.

    Usage::

        executor = ActionExecutor(document)
        result = executor.apply("add_component", {"comp_type": "button"})
        if isinstance(result, MutationSummary):
            print(result.line)
    """

    def __init__(self, document: DocumentHandle) -> None:
        self.document = document

    def apply(self, name: str, params: dict[str, Any] | None = None) -> ApplyResult:
        """Parse and apply one action.

        Returns:
            ``MutationSummary`` on success, ``ActionFailure`` when the action
            or the document rejected it, ``NOOP`` for unknown actions.
        """
        try:
            action = parse_action(name, params)
        except ValidationError as e:
            reason = "; ".join(err["msg"] for err in e.errors()) or str(e)
            logger.warning("Invalid parameters for action %s: %s", name, reason)
            return ActionFailure(action=name, reason=f"invalid parameters ({reason})")

        try:
            return self.execute(action)
        except (ActionError, DocumentError) as e:
            logger.warning("Action %s failed: %s", name, e)
            return ActionFailure(action=name, reason=str(e))
        except Exception as e:
            # The document is an external collaborator; its own errors stay non-fatal
            logger.exception("Document raised while applying %s", name)
            return ActionFailure(action=name, reason=str(e) or type(e).__name__)

    def execute(self, action: Action) -> ApplyResult:
        """Dispatch a typed action.

        Raises:
            ActionError: If the action cannot be applied to the document.
            DocumentError: If the document rejects the combined mutation.
        """
        if isinstance(action, AddComponent):
            return self._add_component(action)
        if isinstance(action, RemoveComponent):
            return self._remove_component(action)
        if isinstance(action, UnrecognizedAction):
            logger.info("Ignoring unrecognized action %s", action.name)
            return NOOP
        raise ActionError(f"Unhandled action type {type(action).__name__}", action=action_name(action))

    def _add_component(self, action: AddComponent) -> MutationSummary:
        container = self.document.current_container()
        component_id = self.document.generate_id()
        if component_id in container.layout or component_id in container.items:
            raise ActionError(
                f"Document produced an identifier already in use: {component_id}",
                action=action_name(action),
            )

        name = action.name or generate_name(self.document, action.component_type)
        x, y, w, h = default_layout(action, len(container.layout))

        layout = {**container.layout, component_id: LayoutCell(i=component_id, x=x, y=y, w=w, h=h)}
        items = {
            **container.items,
            component_id: ComponentDescriptor(
                id=component_id,
                comp_type=action.component_type,
                name=name,
                props=dict(action.props or {}),
            ),
        }
        self.document.commit(ContainerMutation(container=container.key, layout=layout, items=items))

        logger.info("Added %s '%s' at (%d, %d, %d, %d)", action.component_type, name, x, y, w, h)
        return MutationSummary(action=action_name(action), label=name, component_id=component_id)

    def _remove_component(self, action: RemoveComponent) -> MutationSummary:
        container = self.document.current_container()
        target = container.find_by_name(action.name)
        if target is None:
            raise ActionError(f"no component named '{action.name}'", action=action_name(action))

        layout = {k: v for k, v in container.layout.items() if k != target.id}
        items = {k: v for k, v in container.items.items() if k != target.id}
        self.document.commit(
            ContainerMutation(container=container.key, layout=layout, items=items, removed=(target.id,))
        )

        logger.info("Removed %s '%s'", target.comp_type, target.name)
        return MutationSummary(action=action_name(action), label=target.name, component_id=target.id)


__all__ = [
    "NOOP",
    "ActionExecutor",
    "ActionFailure",
    "ApplyResult",
    "MutationSummary",
    "default_layout",
    "generate_name",
]
