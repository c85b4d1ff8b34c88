"""Four-channel DMA controller with H-blank, V-blank, video and sound FIFO triggers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from functools import partial
from typing import Any, Callable, List, Optional, Protocol

from .irq import IrqSource

logger = logging.getLogger(__name__)

REG_DMAXSAD = 0
REG_DMAXDAD = 4
REG_DMAXCNT_L = 8
REG_DMAXCNT_H = 10

ACCESS_NONSEQUENTIAL = 0
ACCESS_SEQUENTIAL = 1
ACCESS_DMA = 2

EEPROM_SIZE_4K = 4
EEPROM_SIZE_64K = 64

_NONE_ID = -1

_SRC_MODIFY = ((2, -2, 0, 0), (4, -4, 0, 0))
_DST_MODIFY = ((2, -2, 0, 2), (4, -4, 0, 4))

_SRC_MASK = (0x07FFFFFF, 0x0FFFFFFF, 0x0FFFFFFF, 0x0FFFFFFF)
_DST_MASK = (0x07FFFFFF, 0x07FFFFFF, 0x07FFFFFF, 0x0FFFFFFF)
_LEN_MASK = (0x3FFF, 0x3FFF, 0x3FFF, 0xFFFF)


class Scheduler(Protocol):
    """Event queue the controller uses to delay channel start-up."""

    def add(self, delay: int, callback: Callable[[], None]) -> Any: ...

    def cancel(self, event: Any) -> None: ...

    def timestamp_now(self) -> int: ...


class Bus(Protocol):
    """Memory bus the DMA transfers go through."""

    def step(self, cycles: int) -> None: ...

    def read_half(self, address: int, access: int) -> int: ...

    def read_word(self, address: int, access: int) -> int: ...

    def write_half(self, address: int, value: int, access: int) -> None: ...

    def write_word(self, address: int, value: int, access: int) -> None: ...

    def set_eeprom_size_hint(self, size: int) -> None: ...


class InterruptController(Protocol):
    def raise_irq(self, source: IrqSource, channel: int = 0) -> None: ...


class Occasion(Enum):
    HBLANK = "hblank"
    VBLANK = "vblank"
    VIDEO = "video"
    FIFO0 = "fifo0"
    FIFO1 = "fifo1"


class AddressControl(IntEnum):
    INCREMENT = 0
    DECREMENT = 1
    FIXED = 2
    RELOAD = 3


class Timing(IntEnum):
    IMMEDIATE = 0
    VBLANK = 1
    HBLANK = 2
    SPECIAL = 3


class TransferSize(IntEnum):
    HALF = 0
    WORD = 1


@dataclass
class DmaChannel:
    """Configuration and running state of one DMA channel."""

    id: int
    enable: bool = False
    repeat: bool = False
    interrupt: bool = False
    gamepak: bool = False
    length: int = 0
    dst_addr: int = 0
    src_addr: int = 0
    dst_cntl: AddressControl = AddressControl.INCREMENT
    src_cntl: AddressControl = AddressControl.INCREMENT
    time: Timing = Timing.IMMEDIATE
    size: TransferSize = TransferSize.HALF
    latch_length: int = 0
    latch_dst_addr: int = 0
    latch_src_addr: int = 0
    latch_bus: int = 0
    is_fifo_dma: bool = False
    event: Optional[Any] = None

    @property
    def control(self) -> int:
        return (
            (int(self.dst_cntl) << 5)
            | (int(self.src_cntl) << 7)
            | (512 if self.repeat else 0)
            | (int(self.size) << 10)
            | (2048 if self.gamepak else 0)
            | (int(self.time) << 12)
            | (16384 if self.interrupt else 0)
            | (32768 if self.enable else 0)
        )


@dataclass
class DmaChannelState:
    dst_address: int = 0
    src_address: int = 0
    length: int = 0
    control: int = 0
    latch_dst_address: int = 0
    latch_src_address: int = 0
    latch_length: int = 0
    latch_bus: int = 0
    is_fifo_dma: bool = False
    event: Optional[Any] = None


@dataclass
class DmaState:
    hblank_set: int = 0
    vblank_set: int = 0
    video_set: int = 0
    runnable_set: int = 0
    latch: int = 0
    channels: List[DmaChannelState] = field(
        default_factory=lambda: [DmaChannelState() for _ in range(4)]
    )


def _highest_priority(bitset: int) -> int:
    if bitset == 0:
        return _NONE_ID
    return (bitset & -bitset).bit_length() - 1


class Dma:
    """DMA controller with four prioritised channels."""

    def __init__(self, bus: Bus, irq: InterruptController, scheduler: Scheduler) -> None:
        self._bus = bus
        self._irq = irq
        self._scheduler = scheduler
        self._latch = 0
        self.reset()

    @property
    def is_running(self) -> bool:
        return self._runnable_set != 0

    @property
    def open_bus_value(self) -> int:
        """Most recent value transferred by any channel."""
        return self._latch

    @property
    def active_channel(self) -> int:
        return self._active_dma_id

    def reset(self) -> None:
        self._active_dma_id = _NONE_ID
        self._should_reenter_transfer_loop = False
        self._hblank_set = 0
        self._vblank_set = 0
        self._video_set = 0
        self._runnable_set = 0
        self.channels = [DmaChannel(id=i) for i in range(4)]

    def _schedule_dmas(self, bitset: int) -> None:
        while bitset:
            chan_id = _highest_priority(bitset)
            bitset &= ~(1 << chan_id)
            self.channels[chan_id].event = self._scheduler.add(
                2, partial(self._on_activated, chan_id)
            )

    def _on_activated(self, chan_id: int) -> None:
        self.channels[chan_id].event = None

        if self._runnable_set == 0:
            self._active_dma_id = chan_id
        elif chan_id < self._active_dma_id:
            self._active_dma_id = chan_id
            self._should_reenter_transfer_loop = True

        self._runnable_set |= 1 << chan_id

    def _select_next_dma(self) -> None:
        self._active_dma_id = _highest_priority(self._runnable_set)

    def request(self, occasion: Occasion) -> None:
        """Trigger all channels waiting for the given occasion."""
        if occasion is Occasion.HBLANK:
            self._schedule_dmas(self._hblank_set)
        elif occasion is Occasion.VBLANK:
            self._schedule_dmas(self._vblank_set)
        elif occasion is Occasion.VIDEO:
            self._schedule_dmas(self._video_set)
        elif occasion is Occasion.FIFO0:
            channel = self.channels[1]
            if channel.enable and channel.time == Timing.SPECIAL:
                self._schedule_dmas(2)
        elif occasion is Occasion.FIFO1:
            channel = self.channels[2]
            if channel.enable and channel.time == Timing.SPECIAL:
                self._schedule_dmas(4)
        else:
            raise ValueError(f"unknown DMA occasion: {occasion!r}")

    def stop_video_transfer_dma(self) -> None:
        channel = self.channels[3]
        if channel.enable:
            channel.enable = False
            self._on_channel_written(channel, True)

    def has_video_transfer_dma(self) -> bool:
        channel = self.channels[3]
        return channel.enable and channel.time == Timing.SPECIAL

    def run(self) -> int:
        """Run pending transfers until none is runnable; return the cycles spent."""
        if self._active_dma_id == _NONE_ID:
            raise RuntimeError("no DMA channel is runnable")

        self._bus.step(1)
        timestamp0 = self._scheduler.timestamp_now()

        while True:
            self._run_channel()
            if not self.is_running:
                break

        timestamp1 = self._scheduler.timestamp_now()
        self._bus.step(1)
        return timestamp1 - timestamp0

    def _run_channel(self) -> None:
        channel = self.channels[self._active_dma_id]
        bus = self._bus
        size = channel.size

        if channel.is_fifo_dma:
            size = TransferSize.WORD
            dst_modify = 0
        else:
            dst_modify = _DST_MODIFY[size][channel.dst_cntl]
        src_modify = _SRC_MODIFY[size][channel.src_cntl]

        did_access_rom = False

        while channel.latch_length != 0:
            if self._should_reenter_transfer_loop:
                self._should_reenter_transfer_loop = False
                return

            src_addr = channel.latch_src_addr
            dst_addr = channel.latch_dst_addr

            access_src = ACCESS_SEQUENTIAL | ACCESS_DMA
            access_dst = ACCESS_SEQUENTIAL | ACCESS_DMA

            if not did_access_rom:
                if src_addr >= 0x08000000:
                    access_src = ACCESS_NONSEQUENTIAL | ACCESS_DMA
                    did_access_rom = True
                elif dst_addr >= 0x08000000:
                    access_dst = ACCESS_NONSEQUENTIAL | ACCESS_DMA
                    did_access_rom = True

            if size == TransferSize.HALF:
                if src_addr >= 0x02000000:
                    value = bus.read_half(src_addr, access_src) & 0xFFFF
                    channel.latch_bus = (value << 16) | value
                    self._latch = channel.latch_bus
                else:
                    if dst_addr & 2:
                        value = channel.latch_bus >> 16
                    else:
                        value = channel.latch_bus & 0xFFFF
                    bus.step(1)
                bus.write_half(dst_addr, value, access_dst)
            else:
                if src_addr >= 0x02000000:
                    channel.latch_bus = bus.read_word(src_addr, access_src) & 0xFFFFFFFF
                    self._latch = channel.latch_bus
                else:
                    bus.step(1)
                bus.write_word(dst_addr, channel.latch_bus, access_dst)

            channel.latch_src_addr = (channel.latch_src_addr + src_modify) & 0xFFFFFFFF
            channel.latch_dst_addr = (channel.latch_dst_addr + dst_modify) & 0xFFFFFFFF
            channel.latch_length -= 1

        self._runnable_set &= ~(1 << channel.id)

        if channel.interrupt:
            self._irq.raise_irq(IrqSource.DMA, channel.id)

        if channel.repeat and channel.time != Timing.IMMEDIATE:
            if channel.is_fifo_dma:
                channel.latch_length = 4
            else:
                self._reload_length(channel)

            if channel.dst_cntl == AddressControl.RELOAD and not channel.is_fifo_dma:
                mask = ~3 if channel.size == TransferSize.WORD else ~1
                channel.latch_dst_addr = channel.dst_addr & mask
        else:
            self._remove_channel_from_dma_sets(channel)
            channel.enable = False

        self._select_next_dma()

    @staticmethod
    def _reload_length(channel: DmaChannel) -> None:
        len_mask = _LEN_MASK[channel.id]
        channel.latch_length = channel.length & len_mask
        if channel.latch_length == 0:
            channel.latch_length = len_mask + 1

    def read(self, chan_id: int, offset: int) -> int:
        channel = self.channels[chan_id]
        if offset == REG_DMAXCNT_H:
            return ((channel.dst_cntl << 5) | (channel.src_cntl << 7)) & 0xFF
        if offset == REG_DMAXCNT_H + 1:
            return (
                (channel.src_cntl >> 1)
                | (channel.size << 2)
                | (channel.time << 4)
                | (2 if channel.repeat else 0)
                | (8 if channel.gamepak else 0)
                | (64 if channel.interrupt else 0)
                | (128 if channel.enable else 0)
            )
        return 0

    def write(self, chan_id: int, offset: int, value: int) -> None:
        channel = self.channels[chan_id]
        value &= 0xFF

        if REG_DMAXSAD <= offset < REG_DMAXSAD + 4:
            shift = (offset - REG_DMAXSAD) * 8
            channel.src_addr &= ~(0xFF << shift) & 0xFFFFFFFF
            channel.src_addr |= (value << shift) & _SRC_MASK[chan_id]
        elif REG_DMAXDAD <= offset < REG_DMAXDAD + 4:
            shift = (offset - REG_DMAXDAD) * 8
            channel.dst_addr &= ~(0xFF << shift) & 0xFFFFFFFF
            channel.dst_addr |= (value << shift) & _DST_MASK[chan_id]
        elif offset == REG_DMAXCNT_L:
            channel.length = (channel.length & 0xFF00) | value
        elif offset == REG_DMAXCNT_L + 1:
            channel.length = (channel.length & 0x00FF) | (value << 8)
        elif offset == REG_DMAXCNT_H:
            channel.dst_cntl = AddressControl((value >> 5) & 3)
            channel.src_cntl = AddressControl((channel.src_cntl & 0b10) | (value >> 7))
        elif offset == REG_DMAXCNT_H + 1:
            enable_old = channel.enable
            channel.src_cntl = AddressControl((channel.src_cntl & 0b01) | ((value & 1) << 1))
            channel.size = TransferSize((value >> 2) & 1)
            channel.time = Timing((value >> 4) & 3)
            channel.repeat = bool(value & 2)
            channel.gamepak = bool(value & 8) and chan_id == 3
            channel.interrupt = bool(value & 64)
            channel.enable = bool(value & 128)
            self._on_channel_written(channel, enable_old)

    def _on_channel_written(self, channel: DmaChannel, enable_old: bool) -> None:
        self._remove_channel_from_dma_sets(channel)

        if channel.enable:
            if not enable_old:
                self._start_channel(channel)
            elif channel.event is None:
                # The channel stays enabled: pick up the new configuration.
                self._add_channel_to_dma_set(channel)
                if channel.id == self._active_dma_id:
                    self._should_reenter_transfer_loop = True
            return

        self._runnable_set &= ~(1 << channel.id)

        if channel.event is not None:
            self._scheduler.cancel(channel.event)
            channel.event = None
            logger.warning("DMA: disabled DMA%d while it was starting.", channel.id)

        if channel.id == self._active_dma_id:
            self._should_reenter_transfer_loop = True
            self._select_next_dma()
            logger.warning("DMA: DMA%d cleared its own enable bit.", channel.id)

    def _start_channel(self, channel: DmaChannel) -> None:
        channel.latch_dst_addr = channel.dst_addr
        channel.latch_src_addr = channel.src_addr

        if channel.time == Timing.SPECIAL and channel.id in (1, 2):
            channel.is_fifo_dma = True
            channel.size = TransferSize.WORD
            channel.latch_length = 4
            channel.latch_src_addr &= ~3
            channel.latch_dst_addr &= ~3
            return

        channel.is_fifo_dma = False

        mask = ~3 if channel.size == TransferSize.WORD else ~1
        channel.latch_src_addr &= mask
        channel.latch_dst_addr &= mask
        self._reload_length(channel)

        if channel.time == Timing.IMMEDIATE:
            self._schedule_dmas(1 << channel.id)
        else:
            self._add_channel_to_dma_set(channel)

        # The EEPROM size cannot always be known at load time; guess it from the
        # length of the first transfer that targets it.
        if channel.dst_addr >= 0x0D000000:
            if channel.length in (9, 73):
                self._bus.set_eeprom_size_hint(EEPROM_SIZE_4K)
            if channel.length in (17, 81):
                self._bus.set_eeprom_size_hint(EEPROM_SIZE_64K)

    def _add_channel_to_dma_set(self, channel: DmaChannel) -> None:
        bit = 1 << channel.id
        if channel.time == Timing.HBLANK:
            self._hblank_set |= bit
        elif channel.time == Timing.VBLANK:
            self._vblank_set |= bit
        elif channel.time == Timing.SPECIAL and channel.id == 3:
            self._video_set |= bit

    def _remove_channel_from_dma_sets(self, channel: DmaChannel) -> None:
        bit = ~(1 << channel.id)
        self._hblank_set &= bit
        self._vblank_set &= bit
        self._video_set &= bit

    def load_state(self, state: DmaState) -> None:
        self._should_reenter_transfer_loop = False
        self._hblank_set = state.hblank_set & 0xF
        self._vblank_set = state.vblank_set & 0xF
        self._video_set = state.video_set & 0xF
        self._runnable_set = state.runnable_set & 0xF
        self._latch = state.latch

        for channel, saved in zip(self.channels, state.channels):
            control = saved.control
            channel.dst_addr = saved.dst_address
            channel.src_addr = saved.src_address
            channel.length = saved.length
            channel.enable = bool(control & 32768)
            channel.repeat = bool(control & 512)
            channel.interrupt = bool(control & 16384)
            channel.gamepak = bool(control & 2048)
            channel.dst_cntl = AddressControl((control >> 5) & 3)
            channel.src_cntl = AddressControl((control >> 7) & 3)
            channel.time = Timing((control >> 12) & 3)
            channel.size = TransferSize((control >> 10) & 1)
            channel.latch_dst_addr = saved.latch_dst_address
            channel.latch_src_addr = saved.latch_src_address
            channel.latch_length = saved.latch_length
            channel.latch_bus = saved.latch_bus
            channel.is_fifo_dma = saved.is_fifo_dma
            channel.event = saved.event

        self._select_next_dma()

    def copy_state(self) -> DmaState:
        return DmaState(
            hblank_set=self._hblank_set,
            vblank_set=self._vblank_set,
            video_set=self._video_set,
            runnable_set=self._runnable_set,
            latch=self._latch,
            channels=[
                DmaChannelState(
                    dst_address=channel.dst_addr,
                    src_address=channel.src_addr,
                    length=channel.length,
                    control=channel.control,
                    latch_dst_address=channel.latch_dst_addr,
                    latch_src_address=channel.latch_src_addr,
                    latch_length=channel.latch_length,
                    latch_bus=channel.latch_bus,
                    is_fifo_dma=channel.is_fifo_dma,
                    event=channel.event,
                )
                for channel in self.channels
            ],
        )