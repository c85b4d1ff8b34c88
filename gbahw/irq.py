"""Interrupt controller: IE, IF and IME registers with delayed IRQ line updates."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol

REG_IE = 0
REG_IF = 2
REG_IME = 4


class Scheduler(Protocol):
    """Event queue used to delay register and IRQ line updates."""

    def add(self, delay: int, callback: Callable[[], None], priority: int = 0) -> Any: ...


class IrqSource(Enum):
    VBLANK = "vblank"
    HBLANK = "hblank"
    VCOUNT = "vcount"
    TIMER = "timer"
    SERIAL = "serial"
    DMA = "dma"
    KEYPAD = "keypad"
    ROM = "rom"


@dataclass
class IrqState:
    pending_ime: int = 0
    pending_ie: int = 0
    pending_if: int = 0
    reg_ime: int = 0
    reg_ie: int = 0
    reg_if: int = 0
    irq_available: bool = False


class Irq:
    """Interrupt controller that drives the CPU's IRQ line."""

    def __init__(self, cpu_irq_line: Callable[[bool], None], scheduler: Scheduler) -> None:
        self._cpu_irq_line = cpu_irq_line
        self._scheduler = scheduler
        self.reset()

    @property
    def should_unhalt_cpu(self) -> bool:
        return self._irq_available

    def reset(self) -> None:
        self._pending_ime = 0
        self._pending_ie = 0
        self._pending_if = 0
        self._reg_ime = 0
        self._reg_ie = 0
        self._reg_if = 0
        self._irq_line = False
        self._cpu_irq_line(False)
        self._irq_available = False

    def read_byte(self, offset: int) -> int:
        if offset == REG_IE:
            return self._reg_ie & 0xFF
        if offset == REG_IE + 1:
            return self._reg_ie >> 8
        if offset == REG_IF:
            return self._reg_if & 0xFF
        if offset == REG_IF + 1:
            return self._reg_if >> 8
        if offset == REG_IME:
            return 1 if self._reg_ime else 0
        return 0

    def read_half(self, offset: int) -> int:
        if offset == REG_IE:
            return self._reg_ie
        if offset == REG_IF:
            return self._reg_if
        if offset == REG_IME:
            return 1 if self._reg_ime else 0
        return 0

    def write_byte(self, offset: int, value: int) -> None:
        value &= 0xFF
        if offset == REG_IE:
            self._pending_ie = (self._pending_ie & 0x3F00) | value
        elif offset == REG_IE + 1:
            self._pending_ie = (self._pending_ie & 0x00FF) | ((value << 8) & 0x3F00)
        elif offset == REG_IF:
            self._pending_if &= ~value & 0xFFFF
        elif offset == REG_IF + 1:
            self._pending_if &= ~(value << 8) & 0xFFFF
        elif offset == REG_IME:
            self._pending_ime = value & 1
        self._scheduler.add(1, self._on_write_io, 1)

    def write_half(self, offset: int, value: int) -> None:
        value &= 0xFFFF
        if offset == REG_IE:
            self._pending_ie = value & 0x3FFF
        elif offset == REG_IF:
            self._pending_if &= ~value & 0xFFFF
        elif offset == REG_IME:
            self._pending_ime = value & 1
        self._scheduler.add(1, self._on_write_io, 1)

    def raise_irq(self, source: IrqSource, channel: int = 0) -> None:
        """Flag an interrupt request; it becomes visible one cycle later."""
        if source is IrqSource.VBLANK:
            bits = 1
        elif source is IrqSource.HBLANK:
            bits = 2
        elif source is IrqSource.VCOUNT:
            bits = 4
        elif source is IrqSource.TIMER:
            bits = 8 << channel
        elif source is IrqSource.SERIAL:
            bits = 128
        elif source is IrqSource.DMA:
            bits = 256 << channel
        elif source is IrqSource.KEYPAD:
            bits = 4096
        elif source is IrqSource.ROM:
            bits = 8192
        else:
            raise ValueError(f"unknown interrupt source: {source!r}")
        self._pending_if = (self._pending_if | bits) & 0xFFFF
        self._scheduler.add(1, self._on_write_io, 0)

    def _on_write_io(self) -> None:
        self._reg_ime = self._pending_ime
        self._reg_ie = self._pending_ie
        self._reg_if = self._pending_if

        irq_available_new = (self._reg_ie & self._reg_if) != 0

        if self._irq_available != irq_available_new:
            self._scheduler.add(1, lambda: self._update_ie_and_if(irq_available_new), 0)

        irq_line_new = bool(self._reg_ime) and irq_available_new

        if self._irq_line != irq_line_new:
            self._scheduler.add(2, lambda: self._cpu_irq_line(irq_line_new), 0)
            self._irq_line = irq_line_new

    def _update_ie_and_if(self, irq_available: bool) -> None:
        self._irq_available = irq_available

    def load_state(self, state: IrqState) -> None:
        self._pending_ime = state.pending_ime
        self._pending_ie = state.pending_ie
        self._pending_if = state.pending_if
        self._reg_ime = state.reg_ime
        self._reg_ie = state.reg_ie
        self._reg_if = state.reg_if
        self._irq_line = bool(self._reg_ime) and (self._reg_ie & self._reg_if) != 0
        self._irq_available = state.irq_available

    def copy_state(self) -> IrqState:
        return IrqState(
            pending_ime=self._pending_ime,
            pending_ie=self._pending_ie,
            pending_if=self._pending_if,
            reg_ime=self._reg_ime,
            reg_ie=self._reg_ie,
            reg_if=self._reg_if,
            irq_available=self._irq_available,
        )