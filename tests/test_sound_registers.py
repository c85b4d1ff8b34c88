import pytest

from gbahw.psg import Fifo
from gbahw.psg_channels import NoiseChannel, QuadChannel, WaveChannel
from gbahw.sound_registers import Bias, Side, SoundControl


class FakeScheduler:
    def __init__(self):
        self.events = []

    def add(self, delay, callback, priority=0):
        event = (delay, callback)
        self.events.append(event)
        return event

    def cancel(self, event):
        self.events.remove(event)


@pytest.fixture
def parts():
    scheduler = FakeScheduler()
    fifos = [Fifo(), Fifo()]
    psg1 = QuadChannel(scheduler)
    psg2 = QuadChannel(scheduler)
    psg3 = WaveChannel(scheduler)
    psg4 = NoiseChannel(scheduler)
    soundcnt = SoundControl(fifos, psg1, psg2, psg3, psg4)
    return soundcnt, fifos, psg1


def test_reset_reads_zero(parts):
    soundcnt, _, _ = parts
    assert soundcnt.read_word() == 0
    assert soundcnt.read(4) == 0


def test_word_round_trip(parts):
    soundcnt, _, _ = parts
    soundcnt.write_word(0x770E4477)
    assert soundcnt.read_word() == 0x770E4477


def test_fields_decoded(parts):
    soundcnt, _, _ = parts
    soundcnt.write(0, 0x35)
    assert soundcnt.psg.master[Side.RIGHT] == 5
    assert soundcnt.psg.master[Side.LEFT] == 3
    soundcnt.write(3, 0x40 | 0x04 | 0x01)
    assert soundcnt.dma[0].timer_id == 1
    assert soundcnt.dma[1].timer_id == 1
    assert soundcnt.dma[0].enable[Side.RIGHT] is True
    assert soundcnt.dma[0].enable[Side.LEFT] is False


def test_fifo_reset_bits(parts):
    soundcnt, fifos, _ = parts
    for fifo in fifos:
        fifo.write_word(1)
        fifo.write_word(2)
    soundcnt.write(3, 0x08)
    assert fifos[0].count == 0
    assert fifos[1].count == 2
    soundcnt.write(3, 0x80)
    assert fifos[1].count == 0


def test_master_enable_bit(parts):
    soundcnt, _, _ = parts
    soundcnt.write(4, 0x80)
    assert soundcnt.master_enable is True
    assert soundcnt.read(4) == 0x80


def test_master_disable_clears_state(parts):
    soundcnt, fifos, psg1 = parts
    soundcnt.write(4, 0x80)
    soundcnt.write(0, 0x77)
    soundcnt.write(1, 0xFF)
    fifos[0].write_word(5)
    psg1.write(3, 0xF0)
    psg1.write(5, 0x80)
    assert soundcnt.read(4) & 1 == 1
    soundcnt.write(4, 0)
    assert soundcnt.read(0) == 0
    assert soundcnt.read(1) == 0
    assert fifos[0].count == 0
    assert psg1.is_enabled is False
    assert soundcnt.read(4) == 0


def test_unknown_address_reads_zero(parts):
    soundcnt, _, _ = parts
    soundcnt.write_word(0xFFFFFFFF)
    assert soundcnt.read(5) == 0


def test_bias_reset():
    bias = Bias()
    assert bias.level == 0x200
    assert bias.resolution == 0
    assert bias.read_half() == 0x200
    assert bias.sample_interval == 512
    assert bias.sample_rate == 32768


def test_bias_low_bit_ignored():
    bias = Bias()
    bias.write(0, 0x01)
    assert bias.level & 1 == 0


@pytest.mark.parametrize("value", [0x0000, 0x4102, 0x83FE, 0xC200])
def test_bias_half_round_trip(value):
    bias = Bias()
    bias.write_half(value)
    assert bias.read_half() == value
    assert bias.resolution == value >> 14


@pytest.mark.parametrize("resolution", range(4))
def test_bias_interval_times_rate_constant(resolution):
    bias = Bias()
    bias.write(1, resolution << 6)
    assert bias.sample_interval * bias.sample_rate == 512 * 32768