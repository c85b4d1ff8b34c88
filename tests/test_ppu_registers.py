import pytest

from gbahw.ppu_registers import (
    BackgroundControl,
    BlendControl,
    BlendEffect,
    DisplayControl,
    DisplayStatus,
    Mosaic,
    ReferencePoint,
    WindowLayerSelect,
    WindowRange,
)


def test_display_control_round_trip_and_fields():
    dispcnt = DisplayControl()
    dispcnt.write_half(0x1F45)
    assert dispcnt.read_half() == 0x1F45
    assert dispcnt.hword == 0x1F45
    assert dispcnt.mode == 0x45 & 7
    assert dispcnt.oam_mapping_1d == 1
    assert dispcnt.enable[:5] == [True] * 5
    assert dispcnt.enable[5:] == [False] * 3


def test_display_control_reset_clears():
    dispcnt = DisplayControl()
    dispcnt.write_half(0xFFFF)
    dispcnt.reset()
    assert dispcnt.read_half() == 0
    assert dispcnt.forced_blank == 0
    assert not any(dispcnt.enable)


def test_display_control_unknown_address_reads_zero():
    dispcnt = DisplayControl()
    dispcnt.write_half(0xFFFF)
    assert dispcnt.read(2) == 0


def test_display_status_write_notifies_and_ignores_flags():
    calls = []
    dispstat = DisplayStatus(on_write=lambda: calls.append(1))
    calls.clear()
    dispstat.write(0, 0xFF)
    assert calls == [1]
    assert dispstat.vblank_irq_enable and dispstat.hblank_irq_enable
    assert dispstat.vcount_irq_enable
    assert dispstat.read(0) & 0x07 == 0


def test_display_status_vcount_setting_round_trip():
    dispstat = DisplayStatus()
    dispstat.write_half(0x9A00)
    assert dispstat.vcount_setting == 0x9A
    assert dispstat.read(1) == 0x9A
    dispstat.vblank_flag = True
    assert dispstat.read(0) & 1 == 1


@pytest.mark.parametrize("bg_id", [0, 1])
def test_text_background_has_no_wraparound(bg_id):
    bgcnt = BackgroundControl(bg_id)
    bgcnt.write(1, 0x20)
    assert bgcnt.wraparound == 0


@pytest.mark.parametrize("bg_id", [2, 3])
def test_affine_background_round_trip(bg_id):
    bgcnt = BackgroundControl(bg_id)
    bgcnt.write_half(0xFFFF)
    assert bgcnt.read_half() == 0xFFFF
    assert bgcnt.wraparound == 1
    assert bgcnt.size == 3
    bgcnt.reset()
    assert bgcnt.read_half() == 0


def test_reference_point_sign_extends_bit_27():
    point = ReferencePoint()
    point.write(3, 0x08)
    assert point.written is True
    assert point.initial < 0
    assert point.initial & 0x0FFFFFFF == 0x08000000


def test_reference_point_positive_value():
    point = ReferencePoint()
    for address, byte in enumerate((0x78, 0x56, 0x34, 0x02)):
        point.write(address, byte)
    assert point.initial == 0x02345678
    point.reset()
    assert point.initial == 0 and point.written is False


def test_blend_control_round_trip():
    bldcnt = BlendControl()
    bldcnt.write_half(0x3FFF)
    assert bldcnt.sfx is BlendEffect.DARKEN
    assert all(bldcnt.targets[0]) and all(bldcnt.targets[1])
    assert bldcnt.read_half() == 0x3FFF
    bldcnt.reset()
    assert bldcnt.sfx is BlendEffect.NONE
    assert bldcnt.read_half() == 0


def test_window_range_round_trip():
    winh = WindowRange()
    winh.write_half(0x10F0)
    assert winh.max == 0xF0
    assert winh.min == 0x10
    assert winh.read_half() == 0x10F0


def test_window_layer_select_keeps_six_bits():
    winin = WindowLayerSelect()
    winin.write_half(0xFFFF)
    assert winin.read_half() == 0x3F3F
    winin.write_half(0x2105)
    assert winin.read_half() == 0x2105


def test_window_layer_select_bad_offset():
    winin = WindowLayerSelect()
    with pytest.raises(IndexError):
        winin.write(2, 1)


def test_mosaic_write_and_reset():
    mosaic = Mosaic()
    mosaic.write(0, 0xFF)
    mosaic.write(1, 0x00)
    assert (mosaic.bg.size_x, mosaic.bg.size_y) == (16, 16)
    assert (mosaic.obj.size_x, mosaic.obj.size_y) == (1, 1)
    mosaic.bg.counter_y = 5
    mosaic.reset()
    assert (mosaic.bg.size_x, mosaic.bg.size_y, mosaic.bg.counter_y) == (1, 1, 0)