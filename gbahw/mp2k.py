"""High-level emulation of the MP2K sound driver's software mixer."""

from __future__ import annotations

import copy
import logging
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)

MAX_SOUND_CHANNELS = 12
SOUND_INFO_MAGIC = 0x68736D54

SAMPLE_RATE = 65536
SAMPLES_PER_FRAME = SAMPLE_RATE // 60 + 1
TOTAL_FRAME_COUNT = 7

_WAVE_INFO_FORMAT = "<HHIII"
WAVE_INFO_SIZE = struct.calcsize(_WAVE_INFO_FORMAT)

_EARLY_COEFFICIENT = 0.0015
_LATE_COEFFICIENTS = ((1.0, 0.1), (0.6, 0.25), (0.35, 0.35))
_NORMALIZE_COEFFICIENT = 1.0 / sum(a + b for a, b in _LATE_COEFFICIENTS)


def _s8_to_float(value: int) -> float:
    value &= 0xFF
    if value & 0x80:
        value -= 0x100
    return value / 127.0


def _u8_to_float(value: int) -> float:
    return (value & 0xFF) / 256.0


_DIFFERENTIAL_LUT = tuple(
    _s8_to_float(v)
    for v in (
        0x00, 0x01, 0x04, 0x09, 0x10, 0x19, 0x24, 0x31,
        0xC0, 0xCF, 0xDC, 0xE7, 0xF0, 0xF7, 0xFC, 0xFF,
    )
)


class HostMemory(Protocol):
    """Gives access to emulated memory as host bytes."""

    def host_memory(self, address: int, size: int) -> Optional[Sequence[int]]:
        """Return ``size`` bytes at ``address``, or None for an invalid range."""
        ...


class ChannelStatus(IntEnum):
    START = 0x80
    STOP = 0x40
    LOOP = 0x10
    ECHO = 0x04
    ENV_MASK = 0x03
    ENV_ATTACK = 0x03
    ENV_DECAY = 0x02
    ENV_SUSTAIN = 0x01
    ENV_RELEASE = 0x00
    ON = 0x80 | 0x40 | 0x04 | 0x03


@dataclass
class SoundChannel:
    status: int = 0
    type: int = 0
    volume_r: int = 0
    volume_l: int = 0
    envelope_attack: int = 0
    envelope_decay: int = 0
    envelope_sustain: int = 0
    envelope_release: int = 0
    envelope_volume: int = 0
    envelope_volume_r: int = 0
    envelope_volume_l: int = 0
    echo_volume: int = 0
    echo_length: int = 0
    frequency: int = 0
    wave_address: int = 0


@dataclass
class SoundInfo:
    magic: int = 0
    pcm_dma_counter: int = 0
    reverb: int = 0
    max_channels: int = 0
    master_volume: int = 0
    pcm_samples_per_vblank: int = 0
    pcm_sample_rate: int = 0
    channels: List[SoundChannel] = field(
        default_factory=lambda: [SoundChannel() for _ in range(MAX_SOUND_CHANNELS)]
    )


@dataclass
class WaveInfo:
    type: int = 0
    status: int = 0
    frequency: int = 0
    loop_position: int = 0
    number_of_samples: int = 0

    @classmethod
    def from_bytes(cls, data: Sequence[int]) -> "WaveInfo":
        return cls(*struct.unpack(_WAVE_INFO_FORMAT, bytes(data[:WAVE_INFO_SIZE])))

    def to_bytes(self) -> bytes:
        return struct.pack(
            _WAVE_INFO_FORMAT,
            self.type,
            self.status,
            self.frequency,
            self.loop_position,
            self.number_of_samples,
        )


@dataclass
class _Sampler:
    compressed: bool = False
    should_fetch_sample: bool = True
    current_position: int = 0
    resample_phase: float = 0.0
    sample_history: List[float] = field(default_factory=lambda: [0.0] * 4)
    wave_info: WaveInfo = field(default_factory=WaveInfo)
    wave_data: Optional[Sequence[int]] = None


@dataclass
class _Envelope:
    volume: float = 0.0
    volume_l: List[float] = field(default_factory=lambda: [0.0, 0.0])
    volume_r: List[float] = field(default_factory=lambda: [0.0, 0.0])


def _byte_at(data: Sequence[int], index: int) -> int:
    if 0 <= index < len(data):
        return data[index]
    return 0


class Mp2k:
    """Renders the driver's channels at 65536 Hz with envelopes, resampling and reverb."""

    def __init__(self, bus: HostMemory) -> None:
        self._bus = bus
        self.use_cubic_filter = False
        self.force_reverb = False
        self.sound_info = SoundInfo()
        self._buffer: Optional[List[float]] = None
        self.reset()

    @property
    def is_engaged(self) -> bool:
        return self._engaged

    def reset(self) -> None:
        self._engaged = False
        self._current_frame = 0
        self._buffer_read_index = 0
        self._samplers = [_Sampler() for _ in range(MAX_SOUND_CHANNELS)]
        self._envelopes = [_Envelope() for _ in range(MAX_SOUND_CHANNELS)]

    def sound_main_ram(self, sound_info: SoundInfo) -> None:
        """Take over the driver's per-frame state and update channel envelopes."""
        if sound_info.magic != SOUND_INFO_MAGIC:
            return

        if not self._engaged:
            if sound_info.pcm_samples_per_vblank == 0:
                raise ValueError("MP2K: samples per V-blank must not be zero.")
            self._buffer = [0.0] * (SAMPLES_PER_FRAME * TOTAL_FRAME_COUNT * 2)
            self._engaged = True

        max_channels = min(sound_info.max_channels, MAX_SOUND_CHANNELS)
        self.sound_info = copy.deepcopy(sound_info)
        master_volume = self.sound_info.master_volume

        for i, channel in enumerate(self.sound_info.channels[:max_channels]):
            if channel.status & ChannelStatus.ON == 0:
                continue
            if not self._update_envelope(i, channel):
                channel.status = 0
                continue

            envelope_volume = channel.envelope_volume
            hq_current = self._envelopes[i].volume
            envelope_volume = (envelope_volume * (master_volume + 1)) >> 4
            channel.envelope_volume_r = ((envelope_volume * channel.volume_r) >> 8) & 0xFF
            channel.envelope_volume_l = ((envelope_volume * channel.volume_l) >> 8) & 0xFF

            # Predict the envelope at the next frame to interpolate linearly towards it.
            phase = channel.status & ChannelStatus.ENV_MASK
            if channel.status & ChannelStatus.STOP:
                if ((envelope_volume * channel.envelope_release) >> 8) <= channel.echo_volume:
                    hq_next = _u8_to_float(channel.echo_volume)
                else:
                    hq_next = hq_current * _u8_to_float(channel.envelope_release)
            elif phase == ChannelStatus.ENV_ATTACK:
                hq_next = min(1.0, hq_current + _u8_to_float(channel.envelope_attack))
            elif phase == ChannelStatus.ENV_DECAY:
                if ((envelope_volume * channel.envelope_decay) >> 8) <= channel.envelope_sustain:
                    hq_next = _u8_to_float(channel.envelope_sustain)
                else:
                    hq_next = hq_current * _u8_to_float(channel.envelope_decay)
            else:
                hq_next = hq_current

            hq_master_volume = (master_volume + 1) / 16.0
            hq_volume_r = hq_master_volume * _u8_to_float(channel.volume_r)
            hq_volume_l = hq_master_volume * _u8_to_float(channel.volume_l)

            envelope = self._envelopes[i]
            for j, hq in enumerate((hq_current, hq_next)):
                envelope.volume_r[j] = hq * hq_volume_r
                envelope.volume_l[j] = hq * hq_volume_l

    def _update_envelope(self, i: int, channel: SoundChannel) -> bool:
        """Step one channel's envelope; return False if the channel stops."""
        envelope_volume = channel.envelope_volume
        phase = channel.status & ChannelStatus.ENV_MASK
        hq = self._envelopes[i].volume

        if channel.status & ChannelStatus.START:
            if channel.status & ChannelStatus.STOP:
                return False
            envelope_volume = channel.envelope_attack
            if envelope_volume == 0xFF:
                channel.status = ChannelStatus.ENV_DECAY
            else:
                channel.status = ChannelStatus.ENV_ATTACK
            hq = _u8_to_float(channel.envelope_attack)

            raw = self._bus.host_memory(channel.wave_address, WAVE_INFO_SIZE)
            if raw is None:
                logger.warning(
                    "MP2K: channel[%d] wave address is invalid: 0x%08X",
                    i,
                    channel.wave_address,
                )
                return False
            sampler = _Sampler(wave_info=WaveInfo.from_bytes(raw))
            self._samplers[i] = sampler
            if sampler.wave_info.status & 0xC000:
                channel.status |= ChannelStatus.LOOP
        elif channel.status & ChannelStatus.ECHO:
            if channel.echo_length == 0:
                return False
            channel.echo_length -= 1
        elif channel.status & ChannelStatus.STOP:
            envelope_volume = (envelope_volume * channel.envelope_release) >> 8
            hq *= _u8_to_float(channel.envelope_release)
            if envelope_volume <= channel.echo_volume:
                if channel.echo_volume == 0:
                    return False
                channel.status |= ChannelStatus.ECHO
                envelope_volume = channel.echo_volume
                hq = _u8_to_float(channel.echo_volume)
        elif phase == ChannelStatus.ENV_ATTACK:
            envelope_volume += channel.envelope_attack
            hq = min(1.0, hq + _u8_to_float(channel.envelope_attack))
            if envelope_volume > 0xFE:
                channel.status = (channel.status & ~ChannelStatus.ENV_MASK) | ChannelStatus.ENV_DECAY
                envelope_volume = 0xFF
        elif phase == ChannelStatus.ENV_DECAY:
            envelope_volume = (envelope_volume * channel.envelope_decay) >> 8
            hq *= _u8_to_float(channel.envelope_decay)
            sustain = channel.envelope_sustain
            if envelope_volume <= sustain:
                if sustain == 0 and channel.echo_volume == 0:
                    return False
                channel.status = (channel.status & ~ChannelStatus.ENV_MASK) | ChannelStatus.ENV_SUSTAIN
                envelope_volume = sustain
                hq = _u8_to_float(sustain)

        channel.envelope_volume = envelope_volume & 0xFF
        self._envelopes[i].volume = hq
        return True

    def render_frame(self) -> None:
        """Mix the next frame of all active channels into the ring of frames."""
        if self._buffer is None:
            raise RuntimeError("MP2K mixer is not engaged")
        buffer = self._buffer
        info = self.sound_info

        self._current_frame = (self._current_frame + 1) % TOTAL_FRAME_COUNT

        reverb_strength = max(info.reverb, 48) if self.force_reverb else info.reverb
        max_channels = min(info.max_channels, MAX_SOUND_CHANNELS)
        base = self._current_frame * SAMPLES_PER_FRAME * 2

        if reverb_strength > 0:
            self._render_reverb(base, reverb_strength)
        else:
            buffer[base : base + SAMPLES_PER_FRAME * 2] = [0.0] * (SAMPLES_PER_FRAME * 2)

        cubic = self.use_cubic_filter

        for i, channel in enumerate(info.channels[:max_channels]):
            if channel.status & ChannelStatus.ON == 0:
                continue
            sampler = self._samplers[i]
            envelope = self._envelopes[i]

            if channel.type & 8:
                angular_step = info.pcm_sample_rate / SAMPLE_RATE
            else:
                angular_step = channel.frequency / SAMPLE_RATE

            compressed = (channel.type & 32) != 0
            history = sampler.sample_history
            wave_info = sampler.wave_info

            if sampler.compressed != compressed or sampler.wave_data is None:
                wave_size = wave_info.number_of_samples
                if compressed:
                    wave_size = (wave_size * 33 + 63) // 64
                begin = channel.wave_address + WAVE_INFO_SIZE
                sampler.wave_data = self._bus.host_memory(begin, wave_size)
                if sampler.wave_data is None:
                    logger.warning(
                        "MP2K: channel[%d] sample data has bad memory range 0x%08X - 0x%08X.",
                        i,
                        begin,
                        begin + wave_size,
                    )
                    channel.status = 0
                    continue
                sampler.compressed = compressed

            wave_data = sampler.wave_data

            for j in range(SAMPLES_PER_FRAME):
                t = j / SAMPLES_PER_FRAME
                volume_l = envelope.volume_l[0] * (1 - t) + envelope.volume_l[1] * t
                volume_r = envelope.volume_r[0] * (1 - t) + envelope.volume_r[1] * t

                if sampler.should_fetch_sample:
                    position = sampler.current_position
                    if compressed:
                        block_offset = position & 63
                        block_address = (position >> 6) * 33
                        if block_offset == 0:
                            fetched = _s8_to_float(_byte_at(wave_data, block_address))
                        else:
                            fetched = history[0]
                        lut_index = _byte_at(wave_data, block_address + (block_offset >> 1) + 1)
                        if block_offset & 1:
                            lut_index &= 15
                        else:
                            lut_index >>= 4
                        fetched += _DIFFERENTIAL_LUT[lut_index]
                    else:
                        fetched = _s8_to_float(_byte_at(wave_data, position))

                    if cubic:
                        history[3] = history[2]
                        history[2] = history[1]
                    history[1] = history[0]
                    history[0] = fetched
                    sampler.should_fetch_sample = False

                mu = sampler.resample_phase
                if cubic:
                    mu2 = mu * mu
                    a0 = history[0] - history[1] - history[3] + history[2]
                    a1 = history[3] - history[2] - a0
                    a2 = history[1] - history[3]
                    a3 = history[2]
                    sample = a0 * mu * mu2 + a1 * mu2 + a2 * mu + a3
                else:
                    sample = history[0] * mu + history[1] * (1.0 - mu)

                buffer[base + j * 2] += sample * volume_r
                buffer[base + j * 2 + 1] += sample * volume_l

                sampler.resample_phase += angular_step
                if sampler.resample_phase >= 1:
                    n = int(sampler.resample_phase)
                    sampler.resample_phase -= n
                    sampler.current_position += n
                    sampler.should_fetch_sample = True
                    if sampler.current_position >= wave_info.number_of_samples:
                        if channel.status & ChannelStatus.LOOP:
                            sampler.current_position = wave_info.loop_position + n - 1
                        else:
                            sampler.current_position = wave_info.number_of_samples
                            sampler.should_fetch_sample = False

    def _frame(self, index: int) -> List[float]:
        assert self._buffer is not None
        start = (index % TOTAL_FRAME_COUNT) * SAMPLES_PER_FRAME * 2
        return self._buffer[start : start + SAMPLES_PER_FRAME * 2]

    def _render_reverb(self, base: int, strength: int) -> None:
        assert self._buffer is not None
        buffer = self._buffer
        frame = self._current_frame

        early = self._frame(frame + TOTAL_FRAME_COUNT - 1)
        late = (self._frame(frame + 2), self._frame(frame + 1), self._frame(frame))
        factor = strength / 128.0

        for l in range(0, SAMPLES_PER_FRAME * 2, 2):
            r = l + 1
            late_l = 0.0
            late_r = 0.0
            for samples, (direct, cross) in zip(late, _LATE_COEFFICIENTS):
                sample_l = samples[l]
                sample_r = samples[r]
                late_l += sample_l * direct + sample_r * cross
                late_r += sample_l * cross + sample_r * direct
            late_l *= _NORMALIZE_COEFFICIENT
            late_r *= _NORMALIZE_COEFFICIENT
            buffer[base + l] = (early[l] * _EARLY_COEFFICIENT + late_l) * factor
            buffer[base + r] = (early[r] * _EARLY_COEFFICIENT + late_r) * factor

    def read_sample(self) -> Tuple[float, float]:
        """Return the next stereo sample, rendering a new frame when needed."""
        if self._buffer is None:
            raise RuntimeError("MP2K mixer is not engaged")
        if self._buffer_read_index == 0:
            self.render_frame()
        index = (self._current_frame * SAMPLES_PER_FRAME + self._buffer_read_index) * 2
        self._buffer_read_index = (self._buffer_read_index + 1) % SAMPLES_PER_FRAME
        return self._buffer[index], self._buffer[index + 1]