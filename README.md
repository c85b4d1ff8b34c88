# gbahw

`gbahw` models Game Boy Advance hardware units in plain Python, at the
register and cycle level. Each unit is an ordinary object: you write and read
its I/O registers, and you drive its timing yourself. Whenever a unit has to
reach outside itself (queue a delayed event, raise an interrupt, touch memory)
it calls an object or callable that you pass in.

The package has no runtime dependencies.

## Modules

| Module | Contents |
| --- | --- |
| `gbahw.psg` | `LengthCounter`, `Envelope`, `Sweep` and `BaseChannel` (the frame-sequencer logic shared by the PSG channels), and `Fifo`, the seven-word direct-sound FIFO |
| `gbahw.psg_channels` | `QuadChannel` (square wave with duty, envelope and sweep), `WaveChannel` (4-bit wave RAM playback, two banks) and `NoiseChannel` (LFSR noise) |
| `gbahw.sound_registers` | `SoundControl` (SOUNDCNT) and `Bias` (SOUNDBIAS, with `sample_interval` and `sample_rate`) |
| `gbahw.irq` | `Irq`, the IE/IF/IME interrupt controller; `IrqSource`; `IrqState` snapshots |
| `gbahw.keypad` | `KeyPad`, holding `KeyInput` (KEYINPUT) and `KeyControl` (KEYCNT) |
| `gbahw.dma` | `Dma`, the four-channel DMA controller; `Occasion`, `DmaChannel`, `DmaState` snapshots |
| `gbahw.ppu_registers` | `DisplayControl`, `DisplayStatus`, `BackgroundControl`, `ReferencePoint`, `BlendControl`, `WindowRange`, `WindowLayerSelect`, `Mosaic` |
| `gbahw.color` | `rgb555_to_argb8888`, `blend`, `brighten`, `darken` |
| `gbahw.mp2k` | `Mp2k`, a high-level MP2K sound mixer producing floating-point stereo samples at 65536 Hz |

## Installing

```
pip install .
```

With the test suite's requirements:

```
pip install .[test]
pytest
```

## Examples

### Colour effects

```python
from gbahw.color import brighten, darken, rgb555_to_argb8888

white = 0x7FFF
print(hex(rgb555_to_argb8888(white)))   # 0xffffffff
print(hex(darken(white, 16)))           # 0x0
print(hex(brighten(0x0000, 16)))        # 0x7fff
```

### Sound FIFO

```python
from gbahw.psg import Fifo

fifo = Fifo()
fifo.write_word(0x04030201)
print(fifo.count, hex(fifo.read_word()))   # 1 0x4030201
```

Writing an eighth word into a full FIFO empties it.

### Display registers

```python
from gbahw.ppu_registers import BlendControl, BlendEffect

bldcnt = BlendControl()
bldcnt.write_half(0x3F41)
print(bldcnt.sfx is BlendEffect.BLEND, hex(bldcnt.read_half()))   # True 0x3f41
```

### Interrupts

`Irq` takes a callable that sets the CPU's IRQ line and a scheduler with
`add(delay, callback, priority=0)`. Register writes and raised interrupts only
take effect when the scheduled callbacks run:

```python
from gbahw.irq import Irq, IrqSource

events = []

class Queue:
    def add(self, delay, callback, priority=0):
        events.append(callback)   # this toy queue ignores delays

irq = Irq(lambda level: print("IRQ line", level), Queue())   # IRQ line False
irq.write_half(0, 0x0001)   # IE: V-blank
irq.write_half(4, 1)        # IME
irq.raise_irq(IrqSource.VBLANK)

while events:
    events.pop(0)()         # IRQ line True
print(irq.should_unhalt_cpu)   # True
```

## Collaborators

Each unit documents what it calls as a `typing.Protocol` in its module:

- `psg_channels.Scheduler`: `add(delay, callback)` returning an event, and
  `cancel(event)`. `NoiseChannel` also takes an optional callable that returns
  the mixer's sample interval (512 cycles by default).
- `irq.Scheduler`: `add(delay, callback, priority=0)`. `Irq` also takes the
  IRQ-line callable.
- `KeyPad` takes an `Irq`.
- `dma.Scheduler`: `add`, `cancel` and `timestamp_now()`; `dma.Bus`: `step`,
  `read_half`, `read_word`, `write_half`, `write_word` and
  `set_eeprom_size_hint`; plus an object with `raise_irq(source, channel)`.
- `SoundControl` takes the two `Fifo`s and the four PSG channels.
- `mp2k.HostMemory`: `host_memory(address, size)`, returning bytes or `None`.

## Saving state

`Irq`, `Dma` and `KeyPad` have `load_state` and `copy_state`. `Irq` uses an
`IrqState` dataclass and `Dma` a `DmaState` dataclass; `KeyPad` saves KEYCNT as
a plain integer. `SoundControl` and `Bias` can be saved and restored through
`read_word`/`write_word` and `read_half`/`write_half`. `Mp2k` has no state
snapshot; call `reset` instead.

## What the package does not do

- It has no scheduler, event loop, CPU or memory bus; you supply those.
- It renders no picture. The display side is limited to the registers and the
  colour arithmetic of the compositor; there is no background, sprite or
  window drawing and no frame buffer.
- It does not mix the PSG channels and FIFOs into an audio stream, resample,
  or play sound. Only `Mp2k` produces audio samples, and it does not open an
  audio device.
- It has no command-line program.