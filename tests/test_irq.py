import pytest

from gbahw.irq import REG_IE, REG_IF, REG_IME, Irq, IrqSource, IrqState


class FakeScheduler:
    def __init__(self):
        self.now = 0
        self.seq = 0
        self.events = []

    def add(self, delay, callback, priority=0):
        event = (self.now + delay, priority, self.seq, callback)
        self.seq += 1
        self.events.append(event)
        return event

    def run(self, cycles):
        target = self.now + cycles
        while True:
            due = [e for e in self.events if e[0] <= target]
            if not due:
                break
            event = min(due, key=lambda e: e[:3])
            self.events.remove(event)
            self.now = event[0]
            event[3]()
        self.now = target


@pytest.fixture
def setup():
    scheduler = FakeScheduler()
    line = []
    irq = Irq(line.append, scheduler)
    return irq, scheduler, line


def test_reset_lowers_line(setup):
    irq, _, line = setup
    assert line == [False]
    assert irq.read_half(REG_IE) == 0
    assert irq.should_unhalt_cpu is False


def test_write_is_delayed(setup):
    irq, scheduler, _ = setup
    irq.write_half(REG_IE, 0xFFFF)
    assert irq.read_half(REG_IE) == 0
    scheduler.run(1)
    assert irq.read_half(REG_IE) == 0x3FFF


def test_byte_writes_ie(setup):
    irq, scheduler, _ = setup
    irq.write_byte(REG_IE + 1, 0xFF)
    irq.write_byte(REG_IE, 0xAB)
    scheduler.run(1)
    assert irq.read_byte(REG_IE) == 0xAB
    assert irq.read_half(REG_IE) == 0x3F00 | 0xAB


def test_ime_byte(setup):
    irq, scheduler, _ = setup
    irq.write_byte(REG_IME, 0xFF)
    scheduler.run(1)
    assert irq.read_byte(REG_IME) == 1
    assert irq.read_half(REG_IME) == 1


@pytest.mark.parametrize(
    "source, channel, bit",
    [
        (IrqSource.VBLANK, 0, 1),
        (IrqSource.HBLANK, 0, 2),
        (IrqSource.VCOUNT, 0, 4),
        (IrqSource.TIMER, 2, 8 << 2),
        (IrqSource.SERIAL, 0, 128),
        (IrqSource.DMA, 3, 256 << 3),
        (IrqSource.KEYPAD, 0, 4096),
        (IrqSource.ROM, 0, 8192),
    ],
)
def test_raise_sets_if_bit(setup, source, channel, bit):
    irq, scheduler, _ = setup
    irq.raise_irq(source, channel)
    scheduler.run(1)
    assert irq.read_half(REG_IF) == bit


def test_line_and_unhalt_follow(setup):
    irq, scheduler, line = setup
    irq.write_half(REG_IE, 1)
    irq.write_half(REG_IME, 1)
    scheduler.run(1)
    irq.raise_irq(IrqSource.VBLANK)
    scheduler.run(1)
    assert line[-1] is False
    scheduler.run(1)
    assert irq.should_unhalt_cpu is True
    scheduler.run(1)
    assert line[-1] is True


def test_acknowledge_clears_if(setup):
    irq, scheduler, line = setup
    irq.write_half(REG_IE, 1)
    irq.write_half(REG_IME, 1)
    irq.raise_irq(IrqSource.VBLANK)
    scheduler.run(4)
    assert line[-1] is True
    irq.write_half(REG_IF, 1)
    scheduler.run(4)
    assert irq.read_half(REG_IF) == 0
    assert line[-1] is False
    assert irq.should_unhalt_cpu is False


def test_no_line_without_ime(setup):
    irq, scheduler, line = setup
    irq.write_half(REG_IE, 1)
    irq.raise_irq(IrqSource.VBLANK)
    scheduler.run(4)
    assert irq.should_unhalt_cpu is True
    assert line == [False]


def test_state_round_trip(setup):
    irq, scheduler, _ = setup
    irq.write_half(REG_IE, 0x0005)
    irq.write_half(REG_IME, 1)
    irq.raise_irq(IrqSource.VCOUNT)
    scheduler.run(4)
    state = irq.copy_state()

    other_scheduler = FakeScheduler()
    other = Irq(lambda _: None, other_scheduler)
    other.load_state(state)
    assert other.copy_state() == state
    assert other.read_half(REG_IE) == irq.read_half(REG_IE)
    assert other.read_half(REG_IF) == irq.read_half(REG_IF)
    assert other.should_unhalt_cpu is True


def test_load_default_state(setup):
    irq, _, _ = setup
    irq.load_state(IrqState())
    assert irq.copy_state() == IrqState()