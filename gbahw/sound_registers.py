"""Sound control (SOUNDCNT) and sound bias (SOUNDBIAS) registers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Sequence

from .psg import Fifo
from .psg_channels import NoiseChannel, QuadChannel, WaveChannel

_DMA_A = 0
_DMA_B = 1


class Side(IntEnum):
    LEFT = 0
    RIGHT = 1


@dataclass
class _PsgMix:
    volume: int = 0
    master: List[int] = field(default_factory=lambda: [0, 0])
    enable: List[List[bool]] = field(
        default_factory=lambda: [[False] * 4, [False] * 4]
    )


@dataclass
class _DirectSoundMix:
    volume: int = 0
    enable: List[bool] = field(default_factory=lambda: [False, False])
    timer_id: int = 0


class SoundControl:
    """SOUNDCNT: master enable, PSG mixing and direct-sound routing."""

    def __init__(
        self,
        fifos: Sequence[Fifo],
        psg1: QuadChannel,
        psg2: QuadChannel,
        psg3: WaveChannel,
        psg4: NoiseChannel,
    ) -> None:
        self._fifos = fifos
        self._psg1 = psg1
        self._psg2 = psg2
        self._psg3 = psg3
        self._psg4 = psg4
        self.reset()

    def reset(self) -> None:
        self.master_enable = False
        self.psg = _PsgMix()
        self.dma = [_DirectSoundMix(), _DirectSoundMix()]

    def read(self, address: int) -> int:
        psg = self.psg
        dma = self.dma
        if address == 0:
            return psg.master[Side.RIGHT] | (psg.master[Side.LEFT] << 4)
        if address == 1:
            value = 0
            for bit, on in enumerate(psg.enable[Side.RIGHT] + psg.enable[Side.LEFT]):
                if on:
                    value |= 1 << bit
            return value
        if address == 2:
            return psg.volume | (dma[_DMA_A].volume << 2) | (dma[_DMA_B].volume << 3)
        if address == 3:
            value = 0
            for base, channel in ((0, dma[_DMA_A]), (4, dma[_DMA_B])):
                if channel.enable[Side.RIGHT]:
                    value |= 1 << base
                if channel.enable[Side.LEFT]:
                    value |= 2 << base
                if channel.timer_id:
                    value |= 4 << base
            return value
        if address == 4:
            value = 0
            channels = (self._psg1, self._psg2, self._psg3, self._psg4)
            for bit, channel in enumerate(channels):
                if channel.is_enabled:
                    value |= 1 << bit
            if self.master_enable:
                value |= 0x80
            return value
        return 0

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        psg = self.psg
        dma = self.dma
        if address == 0:
            psg.master[Side.RIGHT] = value & 7
            psg.master[Side.LEFT] = (value >> 4) & 7
        elif address == 1:
            for bit in range(4):
                psg.enable[Side.RIGHT][bit] = bool(value & (1 << bit))
                psg.enable[Side.LEFT][bit] = bool(value & (16 << bit))
        elif address == 2:
            psg.volume = value & 3
            dma[_DMA_A].volume = (value >> 2) & 1
            dma[_DMA_B].volume = (value >> 3) & 1
        elif address == 3:
            for base, channel in ((0, dma[_DMA_A]), (4, dma[_DMA_B])):
                channel.enable[Side.RIGHT] = bool(value & (1 << base))
                channel.enable[Side.LEFT] = bool(value & (2 << base))
                channel.timer_id = (value >> (base + 2)) & 1
            if value & 0x08:
                self._fifos[0].reset()
            if value & 0x80:
                self._fifos[1].reset()
        elif address == 4:
            old_master_enable = self.master_enable
            self.master_enable = bool(value & 0x80)

            if old_master_enable and not self.master_enable:
                self.write(0, 0)
                self.write(1, 0)
                self._psg1.reset()
                self._psg2.reset()
                self._psg3.reset(False)
                self._psg4.reset()
                self._fifos[0].reset()
                self._fifos[1].reset()

    def read_word(self) -> int:
        return (
            self.read(0)
            | (self.read(1) << 8)
            | (self.read(2) << 16)
            | (self.read(3) << 24)
        )

    def write_word(self, value: int) -> None:
        for address in range(4):
            self.write(address, (value >> (address * 8)) & 0xFF)


class Bias:
    """SOUNDBIAS: output bias level and sampling resolution."""

    def __init__(self) -> None:
        self.reset()

    @property
    def sample_interval(self) -> int:
        return 512 >> self.resolution

    @property
    def sample_rate(self) -> int:
        return 32768 << self.resolution

    def reset(self) -> None:
        self.level = 0x200
        self.resolution = 0

    def read(self, address: int) -> int:
        if address == 0:
            return self.level & 0xFF
        if address == 1:
            return ((self.level >> 8) & 3) | (self.resolution << 6)
        return 0

    def write(self, address: int, value: int) -> None:
        value &= 0xFF
        if address == 0:
            self.level = (self.level & ~0xFF) | (value & 0xFE)
        elif address == 1:
            self.level = (self.level & 0xFF) | ((value & 3) << 8)
            self.resolution = value >> 6

    def read_half(self) -> int:
        return self.read(0) | (self.read(1) << 8)

    def write_half(self, value: int) -> None:
        self.write(0, value & 0xFF)
        self.write(1, (value >> 8) & 0xFF)