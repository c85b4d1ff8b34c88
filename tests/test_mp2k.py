import pytest

from gbahw.mp2k import (
    SAMPLES_PER_FRAME,
    SOUND_INFO_MAGIC,
    WAVE_INFO_SIZE,
    ChannelStatus,
    Mp2k,
    SoundChannel,
    SoundInfo,
    WaveInfo,
)

BASE = 0x02000000
WAVE_ADDRESS = BASE + 0x100


class FakeMemory:
    def __init__(self, size=0x1000):
        self.data = bytearray(size)

    def host_memory(self, address, size):
        offset = address - BASE
        if offset < 0 or offset + size > len(self.data):
            return None
        return bytes(self.data[offset : offset + size])

    def put(self, address, payload):
        offset = address - BASE
        self.data[offset : offset + len(payload)] = payload


def make_memory(wave_status=0, samples=b"\x7f" * 64):
    memory = FakeMemory()
    info = WaveInfo(type=0, status=wave_status, frequency=0, loop_position=0,
                    number_of_samples=len(samples))
    memory.put(WAVE_ADDRESS, info.to_bytes() + samples)
    return memory


def make_info(channel=None, reverb=0):
    info = SoundInfo(magic=SOUND_INFO_MAGIC, reverb=reverb, max_channels=12,
                     master_volume=15, pcm_samples_per_vblank=224,
                     pcm_sample_rate=13379)
    if channel is not None:
        info.channels[0] = channel
    return info


def test_channel_without_on_bits_is_skipped():
    mp2k = Mp2k(make_memory())
    channel = SoundChannel(status=ChannelStatus.LOOP, envelope_volume=5)
    mp2k.sound_main_ram(make_info(channel))
    result = mp2k.sound_info.channels[0]
    assert result.status == ChannelStatus.LOOP
    assert result.envelope_volume == 5


def test_wave_info_round_trip():
    info = WaveInfo(type=1, status=0xC000, frequency=44100, loop_position=5,
                    number_of_samples=100)
    raw = info.to_bytes()
    assert len(raw) == WAVE_INFO_SIZE
    assert WaveInfo.from_bytes(raw) == info


def test_wrong_magic_does_not_engage():
    mp2k = Mp2k(make_memory())
    info = make_info()
    info.magic = 0
    mp2k.sound_main_ram(info)
    assert mp2k.is_engaged is False


def test_zero_samples_per_vblank_raises():
    mp2k = Mp2k(make_memory())
    info = make_info()
    info.pcm_samples_per_vblank = 0
    with pytest.raises(ValueError):
        mp2k.sound_main_ram(info)


def test_engages_and_reset_disengages():
    mp2k = Mp2k(make_memory())
    mp2k.sound_main_ram(make_info())
    assert mp2k.is_engaged is True
    mp2k.reset()
    assert mp2k.is_engaged is False


def test_read_sample_before_engaged_raises():
    mp2k = Mp2k(make_memory())
    with pytest.raises(RuntimeError):
        mp2k.read_sample()


def test_start_with_full_attack_goes_to_decay():
    mp2k = Mp2k(make_memory())
    channel = SoundChannel(status=ChannelStatus.START, envelope_attack=0xFF,
                           wave_address=WAVE_ADDRESS, volume_r=128, volume_l=128)
    mp2k.sound_main_ram(make_info(channel))
    result = mp2k.sound_info.channels[0]
    assert result.status == ChannelStatus.ENV_DECAY
    assert result.envelope_volume == 0xFF


def test_start_with_partial_attack_goes_to_attack():
    mp2k = Mp2k(make_memory())
    channel = SoundChannel(status=ChannelStatus.START, envelope_attack=0x40,
                           wave_address=WAVE_ADDRESS)
    mp2k.sound_main_ram(make_info(channel))
    result = mp2k.sound_info.channels[0]
    assert result.status == ChannelStatus.ENV_ATTACK
    assert result.envelope_volume == 0x40


def test_start_and_stop_turns_channel_off():
    mp2k = Mp2k(make_memory())
    channel = SoundChannel(status=ChannelStatus.START | ChannelStatus.STOP,
                           wave_address=WAVE_ADDRESS)
    mp2k.sound_main_ram(make_info(channel))
    assert mp2k.sound_info.channels[0].status == 0


def test_invalid_wave_address_turns_channel_off():
    mp2k = Mp2k(make_memory())
    channel = SoundChannel(status=ChannelStatus.START, envelope_attack=0x10,
                           wave_address=0x10000000)
    mp2k.sound_main_ram(make_info(channel))
    assert mp2k.sound_info.channels[0].status == 0


def test_looping_wave_sets_loop_flag():
    mp2k = Mp2k(make_memory(wave_status=0xC000))
    channel = SoundChannel(status=ChannelStatus.START, envelope_attack=0x10,
                           wave_address=WAVE_ADDRESS)
    mp2k.sound_main_ram(make_info(channel))
    assert mp2k.sound_info.channels[0].status == (
        ChannelStatus.ENV_ATTACK | ChannelStatus.LOOP
    )


def test_input_sound_info_is_not_modified():
    mp2k = Mp2k(make_memory())
    channel = SoundChannel(status=ChannelStatus.START, envelope_attack=0x10,
                           wave_address=WAVE_ADDRESS)
    info = make_info(channel)
    mp2k.sound_main_ram(info)
    assert info.channels[0].status == ChannelStatus.START


def test_echo_countdown_and_expiry():
    mp2k = Mp2k(make_memory())
    mp2k.sound_main_ram(make_info(SoundChannel(status=ChannelStatus.ECHO, echo_length=3)))
    assert mp2k.sound_info.channels[0].echo_length == 2
    mp2k.sound_main_ram(make_info(SoundChannel(status=ChannelStatus.ECHO, echo_length=0)))
    assert mp2k.sound_info.channels[0].status == 0


def test_attack_overflow_switches_to_decay():
    mp2k = Mp2k(make_memory())
    channel = SoundChannel(status=ChannelStatus.ENV_ATTACK, envelope_volume=200,
                           envelope_attack=100)
    mp2k.sound_main_ram(make_info(channel))
    result = mp2k.sound_info.channels[0]
    assert result.status == ChannelStatus.ENV_DECAY
    assert result.envelope_volume == 0xFF


def test_decay_reaches_sustain():
    mp2k = Mp2k(make_memory())
    channel = SoundChannel(status=ChannelStatus.ENV_DECAY, envelope_volume=100,
                           envelope_decay=0, envelope_sustain=50)
    mp2k.sound_main_ram(make_info(channel))
    result = mp2k.sound_info.channels[0]
    assert result.status == ChannelStatus.ENV_SUSTAIN
    assert result.envelope_volume == 50


def test_silence_without_channels():
    mp2k = Mp2k(make_memory())
    mp2k.sound_main_ram(make_info())
    samples = [mp2k.read_sample() for _ in range(SAMPLES_PER_FRAME + 5)]
    assert all(sample == (0.0, 0.0) for sample in samples)


def test_reverb_of_silence_stays_silent():
    mp2k = Mp2k(make_memory())
    mp2k.force_reverb = True
    mp2k.sound_main_ram(make_info(reverb=100))
    samples = [mp2k.read_sample() for _ in range(SAMPLES_PER_FRAME * 2)]
    assert all(sample == (0.0, 0.0) for sample in samples)


@pytest.mark.parametrize("cubic", [False, True])
def test_right_volume_zero_only_left_plays(cubic):
    mp2k = Mp2k(make_memory())
    mp2k.use_cubic_filter = cubic
    channel = SoundChannel(status=ChannelStatus.START, envelope_attack=0xFF,
                           wave_address=WAVE_ADDRESS, volume_r=0, volume_l=200,
                           frequency=32768)
    mp2k.sound_main_ram(make_info(channel))
    samples = [mp2k.read_sample() for _ in range(SAMPLES_PER_FRAME)]
    assert all(right == 0.0 for right, _ in samples)
    assert any(left > 0.0 for _, left in samples)


def test_stereo_is_symmetric_with_equal_volumes():
    mp2k = Mp2k(make_memory())
    channel = SoundChannel(status=ChannelStatus.START, envelope_attack=0xFF,
                           wave_address=WAVE_ADDRESS, volume_r=128, volume_l=128,
                           frequency=16384)
    mp2k.sound_main_ram(make_info(channel))
    samples = [mp2k.read_sample() for _ in range(200)]
    assert all(right == left for right, left in samples)
    assert any(right != 0.0 for right, _ in samples)


def test_bad_sample_range_turns_channel_off():
    memory = FakeMemory(size=0x200)
    info = WaveInfo(number_of_samples=0x1000)
    memory.put(WAVE_ADDRESS, info.to_bytes())
    mp2k = Mp2k(memory)
    channel = SoundChannel(status=ChannelStatus.START, envelope_attack=0xFF,
                           wave_address=WAVE_ADDRESS, volume_r=128, volume_l=128,
                           frequency=16384)
    mp2k.sound_main_ram(make_info(channel))
    assert mp2k.sound_info.channels[0].status == ChannelStatus.ENV_DECAY
    mp2k.render_frame()
    assert mp2k.sound_info.channels[0].status == 0