"""Display, background, window, blending and mosaic control registers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, List, Optional


def _bits(value: int, count: int) -> List[bool]:
    return [bool((value >> bit) & 1) for bit in range(count)]


def _pack(flags: List[bool]) -> int:
    value = 0
    for bit, on in enumerate(flags):
        if on:
            value |= 1 << bit
    return value


class DisplayControl:
    """DISPCNT: background mode, frame select and layer enables."""

    def __init__(self) -> None:
        self.hword = 0
        self.mode = 0
        self.cgb_mode = 0
        self.frame = 0
        self.hblank_oam_access = 0
        self.oam_mapping_1d = 0
        self.forced_blank = 0
        self.enable = [False] * 8
        self.reset()

    def reset(self) -> None:
        self.write(0, 0)
        self.write(1, 0)

    def read(self, address: int) -> int:
        if address == 0:
            return self.hword & 0xFF
        if address == 1:
            return (self.hword >> 8) & 0xFF
        return 0

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        if address == 0:
            self.hword = (self.hword & 0xFF00) | value
            self.mode = value & 7
            self.cgb_mode = (value >> 3) & 1
            self.frame = (value >> 4) & 1
            self.hblank_oam_access = (value >> 5) & 1
            self.oam_mapping_1d = (value >> 6) & 1
            self.forced_blank = (value >> 7) & 1
        elif address == 1:
            self.hword = (self.hword & 0x00FF) | (value << 8)
            self.enable = _bits(value, 8)

    def read_half(self) -> int:
        return self.read(0) | (self.read(1) << 8)

    def write_half(self, value: int) -> None:
        self.write(0, value & 0xFF)
        self.write(1, (value >> 8) & 0xFF)


class DisplayStatus:
    """DISPSTAT: blanking flags, V-count match and their interrupt enables."""

    def __init__(self, on_write: Optional[Callable[[], None]] = None) -> None:
        self._on_write = on_write
        self.vblank_flag = False
        self.hblank_flag = False
        self.vcount_flag = False
        self.vblank_irq_enable = False
        self.hblank_irq_enable = False
        self.vcount_irq_enable = False
        self.vcount_setting = 0
        self.reset()

    def reset(self) -> None:
        self.write(0, 0)
        self.write(1, 0)

    def read(self, address: int) -> int:
        if address == 0:
            return _pack(
                [
                    self.vblank_flag,
                    self.hblank_flag,
                    self.vcount_flag,
                    self.vblank_irq_enable,
                    self.hblank_irq_enable,
                    self.vcount_irq_enable,
                ]
            )
        if address == 1:
            return self.vcount_setting
        return 0

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        if address == 0:
            self.vblank_irq_enable = bool((value >> 3) & 1)
            self.hblank_irq_enable = bool((value >> 4) & 1)
            self.vcount_irq_enable = bool((value >> 5) & 1)
        elif address == 1:
            self.vcount_setting = value
        if self._on_write is not None:
            self._on_write()

    def read_half(self) -> int:
        return self.read(0) | (self.read(1) << 8)

    def write_half(self, value: int) -> None:
        self.write(0, value & 0xFF)
        self.write(1, (value >> 8) & 0xFF)


class BackgroundControl:
    """BGxCNT: priority, tile and map blocks, palette mode and screen size."""

    def __init__(self, id: int) -> None:
        self.id = id
        self.priority = 0
        self.tile_block = 0
        self.unused = 0
        self.mosaic_enable = 0
        self.full_palette = 0
        self.map_block = 0
        self.wraparound = 0
        self.size = 0
        self.reset()

    def reset(self) -> None:
        self.write(0, 0)
        self.write(1, 0)

    def read(self, address: int) -> int:
        if address == 0:
            return (
                self.priority
                | (self.tile_block << 2)
                | (self.unused << 4)
                | (self.mosaic_enable << 6)
                | (self.full_palette << 7)
            )
        if address == 1:
            return self.map_block | (self.wraparound << 5) | (self.size << 6)
        return 0

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        if address == 0:
            self.priority = value & 3
            self.tile_block = (value >> 2) & 3
            self.unused = (value >> 4) & 3
            self.mosaic_enable = (value >> 6) & 1
            self.full_palette = value >> 7
        elif address == 1:
            self.map_block = value & 0x1F
            # Only the affine backgrounds have a wraparound bit.
            if self.id >= 2:
                self.wraparound = (value >> 5) & 1
            self.size = value >> 6

    def read_half(self) -> int:
        return self.read(0) | (self.read(1) << 8)

    def write_half(self, value: int) -> None:
        self.write(0, value & 0xFF)
        self.write(1, (value >> 8) & 0xFF)


def _to_s32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


class ReferencePoint:
    """BGxX / BGxY: 28-bit signed fixed-point affine reference point."""

    def __init__(self) -> None:
        self.initial = 0
        self.current = 0
        self.written = False

    def reset(self) -> None:
        self.initial = 0
        self.current = 0
        self.written = False

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        initial = self.initial & 0xFFFFFFFF
        if address == 0:
            initial = (initial & 0x0FFFFF00) | value
        elif address == 1:
            initial = (initial & 0x0FFF00FF) | (value << 8)
        elif address == 2:
            initial = (initial & 0x0F00FFFF) | (value << 16)
        elif address == 3:
            initial = (initial & 0x00FFFFFF) | (value << 24)

        if initial & (1 << 27):
            initial |= 0xF0000000

        self.initial = _to_s32(initial)
        self.written = True


class BlendEffect(IntEnum):
    NONE = 0
    BLEND = 1
    BRIGHTEN = 2
    DARKEN = 3


class BlendControl:
    """BLDCNT: special effect selection and its first and second target layers."""

    def __init__(self) -> None:
        self.sfx = BlendEffect.NONE
        self.targets = [[False] * 6, [False] * 6]
        self.reset()

    def reset(self) -> None:
        self.write(0, 0)
        self.write(1, 0)

    def read(self, address: int) -> int:
        if address == 0:
            return _pack(self.targets[0]) | (int(self.sfx) << 6)
        if address == 1:
            return _pack(self.targets[1])
        return 0

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        if address == 0:
            self.targets[0] = _bits(value, 6)
            self.sfx = BlendEffect(value >> 6)
        elif address == 1:
            self.targets[1] = _bits(value, 6)

    def read_half(self) -> int:
        return self.read(0) | (self.read(1) << 8)

    def write_half(self, value: int) -> None:
        self.write(0, value & 0xFF)
        self.write(1, (value >> 8) & 0xFF)


class WindowRange:
    """WINxH / WINxV: window start (min) and end (max) coordinates."""

    def __init__(self) -> None:
        self.min = 0
        self.max = 0

    def reset(self) -> None:
        self.min = 0
        self.max = 0

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        if address == 0:
            self.max = value
        elif address == 1:
            self.min = value

    def read_half(self) -> int:
        return self.max | (self.min << 8)

    def write_half(self, value: int) -> None:
        self.write(0, value & 0xFF)
        self.write(1, (value >> 8) & 0xFF)


class WindowLayerSelect:
    """WININ / WINOUT: layers visible inside each of two windows."""

    def __init__(self) -> None:
        self.enable = [[False] * 6, [False] * 6]

    def reset(self) -> None:
        self.write(0, 0)
        self.write(1, 0)

    def read(self, offset: int) -> int:
        return _pack(self.enable[offset])

    def write(self, offset: int, value: int) -> None:
        if offset not in (0, 1):
            raise IndexError(f"window layer select offset out of range: {offset}")
        self.enable[offset] = _bits(value, 6)

    def read_half(self) -> int:
        return self.read(0) | (self.read(1) << 8)

    def write_half(self, value: int) -> None:
        self.write(0, value & 0xFF)
        self.write(1, (value >> 8) & 0xFF)


@dataclass
class MosaicSize:
    size_x: int = 1
    size_y: int = 1
    counter_y: int = 0


class Mosaic:
    """MOSAIC: block sizes for backgrounds and sprites."""

    def __init__(self) -> None:
        self.bg = MosaicSize()
        self.obj = MosaicSize()

    def reset(self) -> None:
        self.bg.size_x = 1
        self.bg.size_y = 1
        self.bg.counter_y = 0
        self.obj.size_x = 1
        self.obj.size_y = 1

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        if address == 0:
            self.bg.size_x = (value & 15) + 1
            self.bg.size_y = (value >> 4) + 1
        elif address == 1:
            self.obj.size_x = (value & 15) + 1
            self.obj.size_y = (value >> 4) + 1