"""The three programmable sound generator voices: square, wave and noise."""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol

from .psg import BaseChannel, EnvelopeDirection, SweepDirection


class Scheduler(Protocol):
    """Event queue the channels use to time their sample generation."""

    def add(self, delay: int, callback: Callable[[], None]) -> Any: ...

    def cancel(self, event: Any) -> None: ...


_DUTY_PATTERNS = (
    (+8, -8, -8, -8, -8, -8, -8, -8),
    (+8, +8, -8, -8, -8, -8, -8, -8),
    (+8, +8, +8, +8, -8, -8, -8, -8),
    (+8, +8, +8, +8, +8, +8, -8, -8),
)

_WAVE_VOLUME = (0, 4, 2, 1)

_LFSR_XOR = (0x6000, 0x60)
_LFSR_INIT = (0x4000, 0x0040)

_DEFAULT_MIXER_INTERVAL = 512


def _default_mixer_interval() -> int:
    return _DEFAULT_MIXER_INTERVAL


class _ScheduledChannel(BaseChannel):
    def __init__(
        self,
        scheduler: Scheduler,
        enable_envelope: bool,
        enable_sweep: bool,
        default_length: int = 64,
    ) -> None:
        super().__init__(enable_envelope, enable_sweep, default_length)
        self._scheduler = scheduler
        self._event: Optional[Any] = None

    def _schedule(self, delay: int) -> None:
        self._event = self._scheduler.add(delay, self.generate)

    def _reschedule(self, delay: int) -> None:
        if self._event is not None:
            self._scheduler.cancel(self._event)
        self._schedule(delay)

    def generate(self) -> None:
        raise NotImplementedError


class QuadChannel(_ScheduledChannel):
    """Square-wave channel with duty cycle, envelope and frequency sweep."""

    def __init__(self, scheduler: Scheduler) -> None:
        super().__init__(scheduler, True, True)
        self.reset()

    @staticmethod
    def _synthesis_interval(frequency: int) -> int:
        return 128 * (2048 - frequency) // 8

    def reset(self) -> None:
        super().reset()
        self.phase = 0
        self.sample = 0
        self.wave_duty = 0
        self.dac_enable = False
        self._event = None

    def generate(self) -> None:
        if not self.is_enabled:
            self.sample = 0
            self._event = None
            return

        if self.dac_enable:
            self.sample = _DUTY_PATTERNS[self.wave_duty][self.phase] * self.envelope.current_volume
        else:
            self.sample = 0
        self.phase = (self.phase + 1) % 8

        self._schedule(self._synthesis_interval(self.sweep.current_freq))

    def read(self, offset: int) -> int:
        if offset == 0:
            return self.sweep.shift | (int(self.sweep.direction) << 3) | (self.sweep.divider << 4)
        if offset == 2:
            return self.wave_duty << 6
        if offset == 3:
            return (
                self.envelope.divider
                | (int(self.envelope.direction) << 3)
                | (self.envelope.initial_volume << 4)
            )
        if offset == 5:
            return 0x40 if self.length.enabled else 0
        return 0

    def write(self, offset: int, value: int) -> None:
        value &= 0xFF
        if offset == 0:
            self.sweep.shift = value & 7
            self.sweep.direction = SweepDirection((value >> 3) & 1)
            self.sweep.divider = (value >> 4) & 7
        elif offset == 2:
            self.length.length = 64 - (value & 63)
            self.wave_duty = (value >> 6) & 3
        elif offset == 3:
            self.envelope.divider = value & 7
            self.envelope.direction = EnvelopeDirection((value >> 3) & 1)
            self.envelope.initial_volume = value >> 4
            self.dac_enable = (value >> 3) != 0
            if not self.dac_enable:
                self.disable()
        elif offset == 4:
            self.sweep.initial_freq = (self.sweep.initial_freq & ~0xFF) | value
            self.sweep.current_freq = self.sweep.initial_freq
        elif offset == 5:
            self.sweep.initial_freq = (self.sweep.initial_freq & 0xFF) | ((value & 7) << 8)
            self.sweep.current_freq = self.sweep.initial_freq
            self.length.enabled = bool(value & 0x40)

            if self.dac_enable and value & 0x80:
                if not self.is_enabled:
                    self._reschedule(self._synthesis_interval(self.sweep.current_freq))
                self.phase = 0
                self.restart()


class WaveChannel(_ScheduledChannel):
    """Channel that plays 4-bit samples from two banks of wave RAM."""

    def __init__(self, scheduler: Scheduler) -> None:
        super().__init__(scheduler, False, False, 256)
        self.wave_ram = [bytearray(16), bytearray(16)]
        self.reset(True)

    @staticmethod
    def _synthesis_interval(frequency: int) -> int:
        return 8 * (2048 - frequency)

    @property
    def is_enabled(self) -> bool:
        return self.playing and self._enabled

    def reset(self, reset_wave_ram: bool) -> None:
        super().reset()
        self.phase = 0
        self.sample = 0
        self.playing = False
        self.force_volume = False
        self.volume = 0
        self.frequency = 0
        self.dimension = 0
        self.wave_bank = 0
        if reset_wave_ram:
            self.wave_ram = [bytearray(16), bytearray(16)]
        self._event = None

    def generate(self) -> None:
        if not self.is_enabled:
            self.sample = 0
            if self._enabled:
                self._schedule(self._synthesis_interval(self.frequency))
            else:
                self._event = None
            return

        byte = self.wave_ram[self.wave_bank][self.phase // 2]
        nibble = byte >> 4 if self.phase % 2 == 0 else byte & 15

        scale = 3 if self.force_volume else _WAVE_VOLUME[self.volume]
        self.sample = (nibble - 8) * 4 * scale

        self.phase += 1
        if self.phase == 32:
            self.phase = 0
            if self.dimension:
                self.wave_bank ^= 1

        self._schedule(self._synthesis_interval(self.frequency))

    def read(self, offset: int) -> int:
        if offset == 0:
            return (self.dimension << 5) | (self.wave_bank << 6) | (0x80 if self.playing else 0)
        if offset == 3:
            return (self.volume << 5) | (0x80 if self.force_volume else 0)
        if offset == 5:
            return 0x40 if self.length.enabled else 0
        return 0

    def write(self, offset: int, value: int) -> None:
        value &= 0xFF
        if offset == 0:
            self.dimension = (value >> 5) & 1
            self.wave_bank = (value >> 6) & 1
            self.playing = bool(value & 0x80)
        elif offset == 2:
            self.length.length = 256 - value
        elif offset == 3:
            self.volume = (value >> 5) & 3
            self.force_volume = bool(value & 0x80)
        elif offset == 4:
            self.frequency = (self.frequency & ~0xFF) | value
        elif offset == 5:
            self.frequency = (self.frequency & 0xFF) | ((value & 7) << 8)
            self.length.enabled = bool(value & 0x40)

            if self.playing and value & 0x80:
                if not self._enabled:
                    self._reschedule(self._synthesis_interval(self.frequency))
                self.phase = 0
                if self.dimension:
                    self.wave_bank = 0
                self.restart()

    def read_sample(self, offset: int) -> int:
        """Read wave RAM from the bank that is not being played."""
        return self.wave_ram[self.wave_bank ^ 1][offset]

    def write_sample(self, offset: int, value: int) -> None:
        """Write wave RAM in the bank that is not being played."""
        self.wave_ram[self.wave_bank ^ 1][offset] = value & 0xFF


class NoiseChannel(_ScheduledChannel):
    """Pseudo-random noise channel driven by a linear-feedback shift register."""

    def __init__(
        self,
        scheduler: Scheduler,
        mixer_interval: Callable[[], int] = _default_mixer_interval,
    ) -> None:
        super().__init__(scheduler, True, False)
        self._mixer_interval = mixer_interval
        self.reset()

    @staticmethod
    def _synthesis_interval(ratio: int, shift: int) -> int:
        interval = 64 << shift
        if ratio == 0:
            return interval // 2
        return interval * ratio

    def reset(self) -> None:
        super().reset()
        self.frequency_shift = 0
        self.frequency_ratio = 0
        self.width = 0
        self.dac_enable = False
        self.lfsr = 0
        self.sample = 0
        self.skip_count = 0
        self._event = None

    def _clock_lfsr(self) -> bool:
        carry = bool(self.lfsr & 1)
        self.lfsr >>= 1
        if carry:
            self.lfsr ^= _LFSR_XOR[self.width]
        return carry

    def generate(self) -> None:
        if not self.is_enabled:
            self.sample = 0
            self._event = None
            return

        self.sample = (8 if self._clock_lfsr() else -8) * self.envelope.current_volume
        if not self.dac_enable:
            self.sample = 0

        # Output that the mixer would never sample is clocked past unseen.
        for _ in range(self.skip_count):
            self._clock_lfsr()

        noise_interval = self._synthesis_interval(self.frequency_ratio, self.frequency_shift)
        mixer_interval = self._mixer_interval()

        if noise_interval < mixer_interval:
            self.skip_count = mixer_interval // noise_interval - 1
            noise_interval = mixer_interval
        else:
            self.skip_count = 0

        self._schedule(noise_interval)

    def read(self, offset: int) -> int:
        if offset == 1:
            return (
                self.envelope.divider
                | (int(self.envelope.direction) << 3)
                | (self.envelope.initial_volume << 4)
            )
        if offset == 4:
            return self.frequency_ratio | (self.width << 3) | (self.frequency_shift << 4)
        if offset == 5:
            return 0x40 if self.length.enabled else 0
        return 0

    def write(self, offset: int, value: int) -> None:
        value &= 0xFF
        if offset == 0:
            self.length.length = 64 - (value & 63)
        elif offset == 1:
            self.envelope.divider = value & 7
            self.envelope.direction = EnvelopeDirection((value >> 3) & 1)
            self.envelope.initial_volume = value >> 4
            self.dac_enable = (value >> 3) != 0
            if not self.dac_enable:
                self.disable()
        elif offset == 4:
            self.frequency_ratio = value & 7
            self.width = (value >> 3) & 1
            self.frequency_shift = value >> 4
        elif offset == 5:
            self.length.enabled = bool(value & 0x40)

            if self.dac_enable and value & 0x80:
                if not self.is_enabled:
                    self.skip_count = 0
                    self._reschedule(
                        self._synthesis_interval(self.frequency_ratio, self.frequency_shift)
                    )
                self.lfsr = _LFSR_INIT[self.width]
                self.restart()