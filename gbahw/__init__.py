"""Register- and cycle-level models of Game Boy Advance hardware units: PSG sound channels, sound FIFO and registers, interrupts, keypad, DMA, display registers, colour effects and an MP2K mixer."""

__version__ = "0.1.0"

__all__ = [
    "color",
    "dma",
    "irq",
    "keypad",
    "mp2k",
    "ppu_registers",
    "psg",
    "psg_channels",
    "sound_registers",
]