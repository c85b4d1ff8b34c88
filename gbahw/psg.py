"""Building blocks of the programmable sound generator channels and the sound FIFO."""

from __future__ import annotations

from enum import IntEnum

CYCLES_PER_STEP = 16777216 // 512
"""Number of CPU cycles between two frame-sequencer steps."""

FIFO_LENGTH = 7


class EnvelopeDirection(IntEnum):
    DECREMENT = 0
    INCREMENT = 1


class SweepDirection(IntEnum):
    INCREMENT = 0
    DECREMENT = 1


class LengthCounter:
    """Counts a note's remaining length and reports when it runs out."""

    def __init__(self, default_length: int = 64) -> None:
        self.default_length = default_length
        self.length = 0
        self.enabled = False

    def reset(self) -> None:
        self.enabled = False
        self.length = 0

    def restart(self) -> None:
        if self.length == 0:
            self.length = self.default_length

    def tick(self) -> bool:
        """Advance one step; return False once the length has expired."""
        if self.enabled:
            self.length -= 1
            return self.length > 0
        return True


class Envelope:
    """Volume envelope that steps the volume up or down at a fixed pace."""

    def __init__(self) -> None:
        self.active = False
        self.enabled = False
        self.direction = EnvelopeDirection.DECREMENT
        self.initial_volume = 0
        self.current_volume = 0
        self.divider = 0
        self.step = 0

    def reset(self) -> None:
        self.direction = EnvelopeDirection.DECREMENT
        self.initial_volume = 0
        self.divider = 0
        self.restart()

    def restart(self) -> None:
        self.step = self.divider
        self.current_volume = self.initial_volume
        self.active = self.enabled

    def tick(self) -> None:
        if self.step != 1:
            self.step = (self.step - 1) & 7
            return

        self.step = self.divider

        if not self.active or self.divider == 0:
            return

        if self.direction == EnvelopeDirection.INCREMENT:
            if self.current_volume != 15:
                self.current_volume += 1
            else:
                self.active = False
        elif self.current_volume != 0:
            self.current_volume -= 1
        else:
            self.active = False


class Sweep:
    """Frequency sweep unit of the first square channel."""

    def __init__(self) -> None:
        self.active = False
        self.enabled = False
        self.direction = SweepDirection.INCREMENT
        self.initial_freq = 0
        self.current_freq = 0
        self.shadow_freq = 0
        self.divider = 0
        self.shift = 0
        self.step = 0

    def reset(self) -> None:
        self.direction = SweepDirection.INCREMENT
        self.initial_freq = 0
        self.divider = 0
        self.shift = 0
        self.restart()

    def restart(self) -> None:
        if self.enabled:
            self.current_freq = self.initial_freq
            self.shadow_freq = self.initial_freq
            self.step = self.divider
            self.active = self.shift != 0 or self.divider != 0

    def tick(self) -> bool:
        """Advance one step; return False when the frequency overflows."""
        if not self.active:
            return True

        self.step -= 1
        if self.step != 0:
            return True

        offset = self.shadow_freq >> self.shift
        self.step = self.divider

        if self.direction == SweepDirection.INCREMENT:
            new_freq = self.shadow_freq + offset
        else:
            new_freq = self.shadow_freq - offset

        if new_freq >= 2048:
            return False
        if self.shift != 0:
            self.shadow_freq = new_freq
            self.current_freq = new_freq
        return True


class BaseChannel:
    """State shared by all PSG channels: length counter, envelope, sweep and sequencer."""

    def __init__(
        self, enable_envelope: bool, enable_sweep: bool, default_length: int = 64
    ) -> None:
        self.length = LengthCounter(default_length)
        self.envelope = Envelope()
        self.envelope.enabled = enable_envelope
        self.sweep = Sweep()
        self.sweep.enabled = enable_sweep
        self.sample = 0
        self._enabled = False
        self.step = 0
        BaseChannel.reset(self)

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    def reset(self) -> None:
        self.length.reset()
        self.envelope.reset()
        self.sweep.reset()
        self._enabled = False
        self.step = 0

    def tick(self) -> None:
        """Run one step of the frame sequencer."""
        if self.step & 1 == 0:
            alive = self.length.tick()
            self._enabled = self._enabled and alive
        if self.step & 3 == 2:
            alive = self.sweep.tick()
            self._enabled = self._enabled and alive
        if self.step == 7:
            self.envelope.tick()

        self.step = (self.step + 1) & 7

    def restart(self) -> None:
        self.length.restart()
        self.sweep.restart()
        self.envelope.restart()
        self._enabled = True
        self.step = 0

    def disable(self) -> None:
        self._enabled = False


class Fifo:
    """Seven-word ring buffer feeding a direct-sound channel."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self._data = [0] * FIFO_LENGTH
        self._rd_ptr = 0
        self._wr_ptr = 0
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def __len__(self) -> int:
        return self._count

    def write_byte(self, offset: int, value: int) -> None:
        shift = offset * 8
        base = self._data[self._wr_ptr] & ~(0xFF << shift)
        self.write_word(base | ((value & 0xFF) << shift))

    def write_half(self, offset: int, value: int) -> None:
        # The value travels through an 8-bit lane, so only its low byte lands.
        shift = offset * 8
        base = self._data[self._wr_ptr] & ~(0xFFFF << shift)
        self.write_word(base | ((value & 0xFF) << shift))

    def write_word(self, value: int) -> None:
        """Append a word; writing to a full FIFO empties it instead."""
        if self._count < FIFO_LENGTH:
            self._data[self._wr_ptr] = value & 0xFFFFFFFF
            self._wr_ptr = (self._wr_ptr + 1) % FIFO_LENGTH
            self._count += 1
        else:
            self.reset()

    def read_word(self) -> int:
        """Return the word at the read position, consuming it if any is queued."""
        value = self._data[self._rd_ptr]
        if self._count > 0:
            self._rd_ptr = (self._rd_ptr + 1) % FIFO_LENGTH
            self._count -= 1
        return value