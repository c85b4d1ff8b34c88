[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gbahw"
version = "0.1.0"
description = "Register- and cycle-level models of Game Boy Advance hardware units: PSG sound channels, sound FIFO, sound registers, DMA, interrupts, keypad, display registers, colour effects and an MP2K sound mixer."
requires-python = ">=3.10"
keywords = ["gba", "game boy advance", "emulator", "apu", "dma", "irq", "ppu", "mp2k"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["gbahw"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
