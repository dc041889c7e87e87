"""Canvas document interface, actions and the action executor."""

from src.document.actions import AddComponent, RemoveComponent, UnrecognizedAction, parse_action
from src.document.executor import NOOP, ActionExecutor, ActionFailure, MutationSummary
from src.document.model import (
    CanvasDocument,
    ComponentDescriptor,
    ContainerMutation,
    ContainerView,
    DocumentHandle,
    LayoutCell,
)

__all__ = [
    "NOOP",
    "ActionExecutor",
    "ActionFailure",
    "AddComponent",
    "CanvasDocument",
    "ComponentDescriptor",
    "ContainerMutation",
    "ContainerView",
    "DocumentHandle",
    "LayoutCell",
    "MutationSummary",
    "RemoveComponent",
    "UnrecognizedAction",
    "parse_action",
]
