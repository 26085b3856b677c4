from __future__ import annotations

from seqcrop.config import AspectRatio, OutputFormat, OutputResolution, OverlayKind
from seqcrop.core.naming import frame_file_name, frame_label, output_stem, video_file_name, zero_pad


def test_zero_pad():
    assert zero_pad(3, 4) == "0003"
    assert zero_pad(12345, 4) == "12345"
    assert zero_pad(0, 1) == "0"


def test_frame_label():
    assert frame_label(23, 4) == "FRAME: 0023"
    assert frame_label(7, 6) == "FRAME: 000007"


def test_output_stem_uses_one_based_range():
    stem = output_stem("shots", AspectRatio.FREE, OutputResolution.NATIVE, 2, 7, 4)
    assert stem == "shots_free_native_in0003-out0008"


def test_output_stem_overlay_tags_in_fixed_order():
    stem = output_stem(
        "holiday",
        AspectRatio.RATIO_16_9,
        OutputResolution.HD,
        0,
        99,
        5,
        {OverlayKind.DATE_TIME, OverlayKind.FRAME_NUMBER},
    )
    assert stem == "holiday_16x9_HD_in00001-out00100_frameNum_dateTime"


def test_output_stem_defaults_folder_name():
    assert output_stem("", AspectRatio.RATIO_9_16, OutputResolution.UHD, 0, 0, 4).startswith("output_9x16_UHD_")


def test_frame_and_video_file_names():
    stem = "shots_free_native_in0003-out0008"
    assert frame_file_name(stem, 4, 4) == "shots_free_native_in0003-out0008_frame_0005.png"
    assert video_file_name(stem, OutputFormat.MP4) == stem + ".mp4"
    assert video_file_name(stem, OutputFormat.PRORES) == stem + ".mov"
