import os

import numpy as np
import pytest

from core.base import VolumeData
from core.dto import ConversionDTO, HistogramParams
from core.errors import ErrorKind
from core.pipeline import (
    build_volume_pipeline,
    output_stem,
    resolve_pipeline_stages,
    run_volume_pipeline,
)
from core.progress import ProgressBus
from processors.target_histogram import TargetHistogram


def _target():
    hist = np.zeros(256)
    hist[60:200] = 500.0
    hist = hist + 1.0
    return TargetHistogram(histogram=hist, raw_histogram=hist, files_selected=("a.png",), files_used=1)


def test_stage_resolution():
    assert resolve_pipeline_stages("enhance") == ("load", "normalize", "enhance", "export")
    assert resolve_pipeline_stages("match", include_export=False) == ("load", "normalize", "match", "evaluate")
    with pytest.raises(ValueError):
        resolve_pipeline_stages("sharpen")


def test_pipeline_nodes_follow_mode():
    recover = build_volume_pipeline(ConversionDTO(mode="recover", loader_type="dummy"), "8x8x6")
    assert recover.node_names == ("load", "normalize", "enhance", "export")
    match = build_volume_pipeline(ConversionDTO(mode="match", loader_type="dummy"), "8x8x6", include_export=False)
    assert match.node_names == ("load", "normalize", "match", "evaluate")


def test_output_stem():
    assert output_stem("/data/scan_01.foct") == "scan_01"
    assert output_stem("") == "volume"


def test_enhance_with_synthetic_loader():
    dto = ConversionDTO(loader_type="dummy")
    results = run_volume_pipeline(dto, "16x12x10", include_export=False)
    enhanced = results["enhance"]
    assert enhanced.raw_data.shape == (16, 12, 10)
    assert np.isfinite(enhanced.raw_data).all()
    assert enhanced.metadata["Enhancement"] == "adaptive"
    assert enhanced.metadata["SourceRange"] == (0.0, 1000.0)
    assert "export" not in results


def test_recover_mode_uses_blended_enhancement():
    results = run_volume_pipeline(ConversionDTO(loader_type="dummy", mode="recover"), "16x12x10",
                                  include_export=False)
    assert results["enhance"].metadata["Enhancement"] == "blended"


def test_unparseable_dummy_source_uses_default_shape():
    results = run_volume_pipeline(ConversionDTO(loader_type="dummy"), "synthetic", include_export=False)
    assert results["load"].raw_data.shape == (64, 48, 40)


def test_export_writes_volume_and_preview(tmp_path):
    dto = ConversionDTO(loader_type="dummy", output_dir=str(tmp_path))
    results = run_volume_pipeline(dto, "16x12x10")
    written = results["export"].written
    assert [os.path.basename(p) for p in written] == ["16x12x10.nii", "16x12x10.png"]
    assert all(os.path.exists(p) for p in written)


def test_missing_output_dir_skips_export():
    results = run_volume_pipeline(ConversionDTO(loader_type="dummy"), "8x8x6")
    assert results["export"].written == []


def test_constant_input_produces_zero_volume():
    data = VolumeData(raw_data=np.full((6, 6, 6), 3.0, dtype=np.float32))
    results = run_volume_pipeline(ConversionDTO(), "const.foct", input_data=data, include_export=False)
    assert not results["enhance"].raw_data.any()
    assert [i.kind for i in results["enhance"].issues] == [ErrorKind.DEGENERATE_RANGE]


def test_match_mode_skips_unavailable_target(tmp_path):
    dto = ConversionDTO(loader_type="dummy", mode="match", output_dir=str(tmp_path), write_preview=False)
    targets = {"mid": _target(), "gone": None}
    results = run_volume_pipeline(dto, "16x12x6", targets=targets)

    matched = results["match"]
    assert list(matched) == ["mid"]
    assert matched["mid"].raw_data.dtype == np.uint8
    assert matched["mid"].metadata["MatchedTarget"] == "mid"
    assert len(matched["mid"].metadata["MappingTables"]) == 6
    assert [i.kind for i in results["load"].issues] == [ErrorKind.TARGET_UNAVAILABLE]
    assert set(results["evaluate"]) == {"mid"}
    assert [os.path.basename(p) for p in results["export"].written] == ["16x12x6_mid.nii"]


def test_match_without_post_processing_is_plain_matching():
    from processors.matching import match_volume
    from processors.normalize import normalize_volume, quantize_uint8

    params = HistogramParams(enable_post_processing=False)
    dto = ConversionDTO(loader_type="dummy", mode="match", histogram=params)
    target = _target()
    results = run_volume_pipeline(dto, "16x12x6", targets={"mid": target}, include_export=False)

    levels = quantize_uint8(normalize_volume(results["load"].raw_data).data)
    expected, _ = match_volume(levels, target.histogram, params)
    np.testing.assert_array_equal(results["match"]["mid"].raw_data, expected)


def test_match_without_targets_records_issue():
    dto = ConversionDTO(loader_type="dummy", mode="match")
    results = run_volume_pipeline(dto, "8x8x6", include_export=False)
    assert results["match"] == {}
    assert [i.kind for i in results["load"].issues] == [ErrorKind.TARGET_UNAVAILABLE]


def test_progress_events_carry_stage_names():
    events = []
    bus = ProgressBus().subscribe(events.append)
    dag_progress = []
    run_volume_pipeline(ConversionDTO(loader_type="dummy"), "8x8x6", include_export=False,
                        progress_bus=bus, dag_progress=lambda p, m: dag_progress.append(p))
    assert {e.stage for e in events} == {"load", "normalize", "enhance"}
    assert dag_progress[-1] == 100


def test_unknown_loader_and_missing_source():
    with pytest.raises(ValueError):
        run_volume_pipeline(ConversionDTO(loader_type="dicom"), "x", include_export=False)
    with pytest.raises(ValueError):
        run_volume_pipeline(ConversionDTO(), "", include_export=False)


def test_recover_random_bytes_stays_finite(tmp_path):
    raw = np.random.default_rng(21).integers(0, 256, size=16 ** 3 * 4, dtype=np.uint8)
    values = raw.view("<f4")
    values[0], values[1] = -3e38, 3e38
    path = tmp_path / "noise.foct"
    path.write_bytes(raw.tobytes())

    dto = ConversionDTO(input_path=str(path), mode="recover")
    results = run_volume_pipeline(dto, str(path), include_export=False)

    enhanced = results["enhance"].raw_data
    assert enhanced.size == 16 ** 3
    assert np.isfinite(enhanced).all()
    lo, hi = results["enhance"].metadata["SourceRange"]
    assert lo <= float(np.float32(-3e38))
    assert hi >= float(np.float32(3e38))


def test_stages_delegate_to_processors():
    from processors.contrast import ContrastEnhancementProcessor
    from processors.matching import HistogramMatchingProcessor

    results = run_volume_pipeline(ConversionDTO(loader_type="dummy", mode="recover"), "12x10x6",
                                  include_export=False)
    expected = ContrastEnhancementProcessor("blended").process(results["load"])
    np.testing.assert_array_equal(results["enhance"].raw_data, expected.raw_data)

    target = _target()
    dto = ConversionDTO(loader_type="dummy", mode="match")
    results = run_volume_pipeline(dto, "16x12x6", targets={"mid": target}, include_export=False)
    expected = HistogramMatchingProcessor(target.histogram, dto.histogram, target_name="mid").process(results["load"])
    np.testing.assert_array_equal(results["match"]["mid"].raw_data, expected.raw_data)
    assert results["match"]["mid"].metadata["PostProcessed"] is True


def test_constant_volume_issue_is_recorded_once_in_match_mode():
    data = VolumeData(raw_data=np.full((6, 6, 4), 2.0, dtype=np.float32))
    dto = ConversionDTO(mode="match")
    results = run_volume_pipeline(dto, "const.foct", input_data=data, targets={"mid": _target()},
                                  include_export=False)
    assert [i.kind for i in results["match"]["mid"].issues] == [ErrorKind.DEGENERATE_RANGE]
