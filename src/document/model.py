"""Canvas document model.

The editor owns the real document; this module fixes the interface the
action executor needs from it (``DocumentHandle``) and ships an in-memory
implementation, ``CanvasDocument``, used by the CLI and the tests.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Protocol

from src.exceptions import DocumentError

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

ROOT_CONTAINER = "root"


@dataclass(frozen=True)
class LayoutCell:
    """Grid placement of one component (24-column grid)."""

    i: str
    x: int
    y: int
    w: int
    h: int

    def to_dict(self) -> dict[str, int | str]:
        return {"i": self.i, "x": self.x, "y": self.y, "w": self.w, "h": self.h}


@dataclass(frozen=True)
class ComponentDescriptor:
    """A child component as stored in its container."""

    id: str
    comp_type: str
    name: str
    props: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ContainerView:
    """Read-only view of a simple container: its layout map and children."""

    key: str
    layout: Mapping[str, LayoutCell]
    items: Mapping[str, ComponentDescriptor]

    def find_by_name(self, name: str) -> ComponentDescriptor | None:
        for item in self.items.values():
            if item.name == name:
                return item
        return None


@dataclass(frozen=True)
class ContainerMutation:
    """A combined change to one container.

    ``layout`` and ``items`` are the complete new maps; ``removed`` lists ids
    that must disappear from both. The document applies all of it or none.
    """

    container: str
    layout: dict[str, LayoutCell]
    items: dict[str, ComponentDescriptor]
    removed: tuple[str, ...] = ()


class DocumentHandle(Protocol):
    """What the action executor needs from a document."""

    def current_container(self) -> ContainerView: ...

    def generate_id(self) -> str: ...

    def name_exists(self, name: str) -> bool: ...

    def commit(self, mutation: ContainerMutation) -> None: ...

    def component_names(self) -> list[str]: ...


@dataclass
class _Container:
    layout: dict[str, LayoutCell] = field(default_factory=dict)
    items: dict[str, ComponentDescriptor] = field(default_factory=dict)


class CanvasDocument:
    """In-memory document with addressable simple containers.

    Identifiers are never reused within the lifetime of the document, even
    after the component holding one is removed.
    """

    def __init__(self) -> None:
        self._containers: dict[str, _Container] = {ROOT_CONTAINER: _Container()}
        self._current = ROOT_CONTAINER
        self._issued_ids: set[str] = set()
        self.revision = 0

    # -- container selection ------------------------------------------------

    def add_container(self, key: str) -> None:
        if key in self._containers:
            raise DocumentError(f"Container '{key}' already exists")
        self._containers[key] = _Container()

    def focus(self, key: str) -> None:
        if key not in self._containers:
            raise DocumentError(f"No container named '{key}'")
        self._current = key

    def current_container(self) -> ContainerView:
        container = self._containers.get(self._current)
        if container is None:
            raise DocumentError(f"Current container '{self._current}' no longer exists")
        return ContainerView(
            key=self._current,
            layout=MappingProxyType(dict(container.layout)),
            items=MappingProxyType(dict(container.items)),
        )

    # -- identifiers and names -----------------------------------------------

    def generate_id(self) -> str:
        while True:
            candidate = uuid.uuid4().hex[:8]
            if candidate not in self._issued_ids:
                self._issued_ids.add(candidate)
                return candidate

    def name_exists(self, name: str) -> bool:
        return any(
            item.name == name
            for container in self._containers.values()
            for item in container.items.values()
        )

    def component_names(self) -> list[str]:
        return [
            item.name
            for container in self._containers.values()
            for item in container.items.values()
        ]

    # -- mutation -------------------------------------------------------------

    def commit(self, mutation: ContainerMutation) -> None:
        """Apply a combined layout + children change atomically.

        Raises:
            DocumentError: If the container is missing or the new maps
                disagree; the document is left untouched.
        """
        container = self._containers.get(mutation.container)
        if container is None:
            raise DocumentError(f"No container named '{mutation.container}'")

        if set(mutation.layout) != set(mutation.items):
            orphans = sorted(set(mutation.layout) ^ set(mutation.items))
            raise DocumentError(f"Layout and children disagree on keys: {orphans}")
        for key, cell in mutation.layout.items():
            if cell.i != key:
                raise DocumentError(f"Layout cell '{cell.i}' stored under key '{key}'")
        leftovers = [key for key in mutation.removed if key in mutation.layout]
        if leftovers:
            raise DocumentError(f"Removed components still present: {leftovers}")

        container.layout = dict(mutation.layout)
        container.items = dict(mutation.items)
        self.revision += 1
        logger.debug(
            "Committed revision %d to container %s (%d children)",
            self.revision,
            mutation.container,
            len(container.items),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize all containers (layout + children) for display or export."""
        return {
            key: {
                "layout": {k: cell.to_dict() for k, cell in container.layout.items()},
                "items": {
                    k: {"compType": item.comp_type, "name": item.name, "props": item.props}
                    for k, item in container.items.items()
                },
            }
            for key, container in self._containers.items()
        }


__all__ = [
    "ROOT_CONTAINER",
    "CanvasDocument",
    "ComponentDescriptor",
    "ContainerMutation",
    "ContainerView",
    "DocumentHandle",
    "LayoutCell",
]
