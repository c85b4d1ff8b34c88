"""Key input (KEYINPUT) and key interrupt control (KEYCNT) registers."""

from __future__ import annotations

from enum import IntEnum
from typing import Callable

from .irq import Irq, IrqSource


class KeyControlMode(IntEnum):
    LOGICAL_OR = 0
    LOGICAL_AND = 1


class KeyInput:
    """KEYINPUT: one bit per key, cleared while the key is held."""

    def __init__(self) -> None:
        self.value = 0x3FF

    def read_byte(self, offset: int) -> int:
        if offset == 0:
            return self.value & 0xFF
        if offset == 1:
            return (self.value >> 8) & 0xFF
        raise ValueError(f"invalid KEYINPUT offset: {offset}")


class KeyControl:
    """KEYCNT: selects the keys and condition that raise the keypad interrupt."""

    def __init__(self, on_change: Callable[[], None]) -> None:
        self.mask = 0
        self.interrupt = False
        self.mode = KeyControlMode.LOGICAL_OR
        self._on_change = on_change

    def read_byte(self, offset: int) -> int:
        if offset == 0:
            return self.mask & 0xFF
        if offset == 1:
            return (
                ((self.mask >> 8) & 3)
                | (64 if self.interrupt else 0)
                | (int(self.mode) << 7)
            )
        raise ValueError(f"invalid KEYCNT offset: {offset}")

    def write_byte(self, offset: int, value: int) -> None:
        value &= 0xFF
        if offset == 0:
            self.mask = (self.mask & 0xFF00) | value
        elif offset == 1:
            self.mask = (self.mask & 0x00FF) | ((value & 3) << 8)
            self.interrupt = bool(value & 64)
            self.mode = KeyControlMode(value >> 7)
        else:
            raise ValueError(f"invalid KEYCNT offset: {offset}")
        self._on_change()

    def write_half(self, value: int) -> None:
        value &= 0xFFFF
        self.mask = value & 0x03FF
        self.interrupt = bool(value & 0x4000)
        self.mode = KeyControlMode(value >> 15)
        self._on_change()


class KeyPad:
    """Keypad with its input and interrupt-control registers."""

    def __init__(self, irq: Irq) -> None:
        self._irq = irq
        self.reset()

    def reset(self) -> None:
        self.input = KeyInput()
        self.control = KeyControl(self.update_irq)

    def set_key_status(self, key: int, pressed: bool) -> None:
        bit = 1 << int(key)
        if pressed:
            self.input.value &= ~bit
        else:
            self.input.value |= bit
        self.update_irq()

    def update_irq(self) -> None:
        """Raise the keypad interrupt if the held keys meet the KEYCNT condition."""
        control = self.control
        if not control.interrupt:
            return
        not_input = ~self.input.value & 0x3FF
        if control.mode == KeyControlMode.LOGICAL_AND:
            if control.mask == not_input:
                self._irq.raise_irq(IrqSource.KEYPAD)
        elif control.mask & not_input:
            self._irq.raise_irq(IrqSource.KEYPAD)

    def load_state(self, keycnt: int) -> None:
        self.control.mask = keycnt & 0x3FF
        self.control.interrupt = bool(keycnt & 0x4000)
        self.control.mode = KeyControlMode((keycnt >> 15) & 1)

    def copy_state(self) -> int:
        return (
            self.control.mask
            | (0x4000 if self.control.interrupt else 0)
            | (int(self.control.mode) << 15)
        )