"""
Positioning logic for the offer template editor.

The editor drags parameter labels over the template background. Positions
are in canvas pixels, measured from the top-left corner of the print area.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, List

from backend.errors import ConflictError
from shared.types import Position, TemplateParameter


@dataclass(frozen=True)
class Canvas:
    width: float
    height: float


@dataclass(frozen=True)
class Size:
    width: float = 0.0
    height: float = 0.0


def clamp_position(
    x: float, y: float, element: Size, canvas: Canvas
) -> Position:
    """Keeps an element of the given size fully inside the canvas."""
    max_x = max(0.0, canvas.width - element.width)
    max_y = max(0.0, canvas.height - element.height)
    return Position(x=min(max(0.0, x), max_x), y=min(max(0.0, y), max_y))


def drag_to(
    pointer_x: float,
    pointer_y: float,
    grab_offset: Position,
    element: Size,
    canvas: Canvas,
) -> Position:
    """
    Position of an element after the pointer moved to (pointer_x, pointer_y).

    `grab_offset` is where the pointer grabbed the element, relative to the
    element's own top-left corner; both pointer and offset are canvas-relative.
    """
    return clamp_position(
        pointer_x - grab_offset.x, pointer_y - grab_offset.y, element, canvas
    )


def _index_of(params: List[TemplateParameter], param_id: str) -> int:
    for i, param in enumerate(params):
        if param.id == param_id:
            return i
    raise KeyError(param_id)


def move(
    params: Iterable[TemplateParameter], param_id: str, position: Position
) -> List[TemplateParameter]:
    updated = list(params)
    i = _index_of(updated, param_id)
    updated[i] = replace(updated[i], position=position)
    return updated


def relabel(
    params: Iterable[TemplateParameter], param_id: str, label: str
) -> List[TemplateParameter]:
    updated = list(params)
    i = _index_of(updated, param_id)
    updated[i] = replace(updated[i], label=label)
    return updated


def ensure_unique_ids(params: Iterable[TemplateParameter]) -> None:
    seen = set()
    for param in params:
        if param.id in seen:
            raise ConflictError(f"Duplicate parameter id: {param.id}")
        seen.add(param.id)


def clamp_all(
    params: Iterable[TemplateParameter], canvas: Canvas
) -> List[TemplateParameter]:
    return [
        replace(p, position=clamp_position(p.position.x, p.position.y, Size(), canvas))
        for p in params
    ]
