"""Gamepad/controller input -> fixed two-hand controller layout.

Connected controllers rarely look like a pair of VR controllers, so every
profile is folded onto one canonical layout (a/b/x/y, trigger, squeeze,
thumbstick, system and menu per hand). Extended gamepads are mapped element by
element as they change; controllers with only a unified profile are mapped
from a snapshot of their named buttons.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple, Union

from ..tracking.anchors import LEFT, RIGHT

logger = logging.getLogger(__name__)

LEFT_VENDOR_NAME = "Joy-Con (L)"

# Source of the emitted value: the element's pressed state, its analog value,
# or one of its axes.
PRESSED = "pressed"
VALUE = "value"
AXIS_X = "x"
AXIS_Y = "y"


def input_path(side: str, component: str, kind: str) -> str:
    return f"/user/hand/{side}/input/{component}/{kind}"


@dataclass(frozen=True)
class ButtonValue:
    """Tagged boolean-or-scalar button value."""

    binary: Optional[bool] = None
    scalar: Optional[float] = None

    @classmethod
    def of_bool(cls, value: bool) -> "ButtonValue":
        return cls(binary=bool(value))

    @classmethod
    def of_scalar(cls, value: float) -> "ButtonValue":
        return cls(scalar=float(value))

    @property
    def is_binary(self) -> bool:
        return self.binary is not None

    def raw(self) -> Union[bool, float]:
        return self.binary if self.binary is not None else float(self.scalar or 0.0)


@dataclass(frozen=True)
class InputEvent:
    path: str
    value: ButtonValue


@dataclass(frozen=True)
class ControllerInfo:
    controller_id: str
    vendor_name: str = ""
    extended: bool = False
    # Haptic localities the controller supports, by platform name.
    localities: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ControllerElementEvent:
    """One element of an extended gamepad changed."""

    controller: ControllerInfo
    element: str
    pressed: bool = False
    value: float = 0.0
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class ControllerSnapshot:
    """Pressed state of a unified-profile controller's named buttons."""

    controller: ControllerInfo
    buttons: Mapping[str, bool] = field(default_factory=dict)


Rule = Tuple[str, str, str, str]


def _squeeze(side: str) -> List[Rule]:
    return [
        (side, "squeeze", "click", PRESSED),
        (side, "squeeze", "value", VALUE),
        (side, "squeeze", "force", VALUE),
    ]


def _trigger(side: str) -> List[Rule]:
    return [
        (side, "trigger", "click", PRESSED),
        (side, "trigger", "value", VALUE),
    ]


def _thumbstick(side: str) -> List[Rule]:
    return [
        (side, "thumbstick", "x", AXIS_X),
        (side, "thumbstick", "y", AXIS_Y),
    ]


def _system(side: str) -> List[Rule]:
    return [
        (side, "system", "click", PRESSED),
        (side, "menu", "click", PRESSED),
    ]


# Extended gamepad element -> emitted events. The d-pad stands in for the
# left controller's face buttons and grip.
EXTENDED_RULES: Dict[str, List[Rule]] = {
    "buttonA": [(RIGHT, "a", "click", PRESSED)],
    "buttonB": [(RIGHT, "b", "click", PRESSED)],
    "buttonX": _squeeze(RIGHT),
    "buttonY": [(RIGHT, "y", "click", PRESSED)],
    "dpad.right": [(LEFT, "y", "click", PRESSED)],
    "dpad.down": [(LEFT, "x", "click", PRESSED)],
    "dpad.up": _squeeze(LEFT),
    "dpad.left": [(LEFT, "x", "click", PRESSED)],
    "leftTrigger": _trigger(LEFT),
    "rightTrigger": _trigger(RIGHT),
    "leftShoulder": _squeeze(LEFT),
    "rightShoulder": _squeeze(RIGHT),
    "leftThumbstick": _thumbstick(LEFT),
    "leftThumbstickButton": [(LEFT, "thumbstick", "click", PRESSED)],
    "rightThumbstick": _thumbstick(RIGHT),
    "rightThumbstickButton": [(RIGHT, "thumbstick", "click", PRESSED)],
    "buttonHome": _system(RIGHT),
    "buttonOptions": _system(LEFT),
    "buttonMenu": _system(RIGHT),
}

UNIFIED_BUTTONS: Tuple[Tuple[str, str], ...] = (
    ("Button A", "a"),
    ("Button B", "b"),
    ("Button X", "x"),
    ("Button Y", "y"),
    ("Button Options", "system"),
)


def controller_side(controller: ControllerInfo) -> str:
    return LEFT if controller.vendor_name == LEFT_VENDOR_NAME else RIGHT


def controller_sides(controller: ControllerInfo) -> Tuple[str, ...]:
    """Hands a controller drives (for haptics); extended gamepads drive both."""
    if controller.extended:
        return (LEFT, RIGHT)
    return (controller_side(controller),)


class InputMapper:
    """Forwards mapped input events to the sink; keeps no state of its own."""

    def __init__(self, sink):
        self.sink = sink

    def _emit(self, events: List[InputEvent]) -> List[InputEvent]:
        for ev in events:
            self.sink.send_button(ev.path, ev.value)
        return events

    def handle_element(self, event: ControllerElementEvent) -> List[InputEvent]:
        rules = EXTENDED_RULES.get(event.element)
        if rules is None:
            logger.debug("[INPUT] unmapped element %s on %s", event.element, event.controller.vendor_name)
            return []
        out = []
        for side, component, kind, source in rules:
            if source == PRESSED:
                value = ButtonValue.of_bool(event.pressed)
            elif source == VALUE:
                value = ButtonValue.of_scalar(event.value)
            elif source == AXIS_X:
                value = ButtonValue.of_scalar(event.x)
            else:
                value = ButtonValue.of_scalar(event.y)
            out.append(InputEvent(path=input_path(side, component, kind), value=value))
        return self._emit(out)

    def handle_snapshot(self, snapshot: ControllerSnapshot) -> List[InputEvent]:
        side = controller_side(snapshot.controller)
        out = [
            InputEvent(
                path=input_path(side, component, "click"),
                value=ButtonValue.of_bool(bool(snapshot.buttons.get(name, False))),
            )
            for name, component in UNIFIED_BUTTONS
        ]
        return self._emit(out)

    def handle(self, event) -> List[InputEvent]:
        if isinstance(event, ControllerSnapshot):
            return self.handle_snapshot(event)
        if isinstance(event, ControllerElementEvent):
            return self.handle_element(event)
        raise TypeError(f"unsupported controller event: {type(event).__name__}")
