import json

import pytest

from core.dto import ConversionDTO, HistogramParams


def test_defaults():
    dto = ConversionDTO()
    assert dto.mode == "enhance"
    assert dto.loader_type == "foct"
    assert dto.element_size == 4
    assert dto.recover_failed
    assert dto.export_formats == ("nii",)
    assert dto.histogram == HistogramParams()


def test_from_dict_accepts_target_mapping_and_pairs():
    from_mapping = ConversionDTO.from_dict({"mode": "match", "targets": {"a": "/ref/a", "b": "/ref/b"}})
    from_pairs = ConversionDTO.from_dict({"mode": "match", "targets": [["a", "/ref/a"], ["b", "/ref/b"]]})
    assert from_mapping.targets == (("a", "/ref/a"), ("b", "/ref/b"))
    assert from_pairs == from_mapping


def test_to_dict_round_trips():
    dto = ConversionDTO(
        input_path="/data",
        mode="match",
        targets=(("a", "/ref/a"),),
        histogram=HistogramParams(sample_size=7, inter_slice_smoothing=False),
        output_dir="/out",
        export_formats=("nii", "vti"),
    )
    restored = ConversionDTO.from_dict(json.loads(json.dumps(dto.to_dict())))
    assert restored == dto


def test_invalid_values_are_rejected():
    with pytest.raises(ValueError):
        ConversionDTO(mode="sharpen")
    with pytest.raises(ValueError):
        ConversionDTO(element_size=0)
    with pytest.raises(ValueError):
        HistogramParams(smoothing_sigma=0.0)
    with pytest.raises(ValueError):
        HistogramParams(mapping_smooth_factor=1.5)
    with pytest.raises(ValueError):
        HistogramParams(smoothing_window=4)
    with pytest.raises(ValueError):
        HistogramParams(sample_size=0)


def test_dto_is_frozen():
    with pytest.raises(AttributeError):
        ConversionDTO().mode = "recover"


def test_from_yaml(tmp_path):
    path = tmp_path / "run.yaml"
    path.write_text(
        "input_path: /data/scans\n"
        "mode: match\n"
        "targets:\n"
        "  dataset_a: /ref/a\n"
        "histogram:\n"
        "  sample_size: 25\n"
        "  smoothing_sigma: 1.5\n",
        encoding="utf-8",
    )
    dto = ConversionDTO.from_yaml(str(path))
    assert dto.input_path == "/data/scans"
    assert dto.targets == (("dataset_a", "/ref/a"),)
    assert dto.histogram.sample_size == 25
    assert dto.histogram.smoothing_sigma == 1.5


def test_from_empty_yaml(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert ConversionDTO.from_yaml(str(path)) == ConversionDTO()


def test_from_json(tmp_path):
    path = tmp_path / "run.json"
    path.write_text(json.dumps({"mode": "recover", "max_workers": 3}), encoding="utf-8")
    dto = ConversionDTO.from_json(str(path))
    assert dto.mode == "recover"
    assert dto.max_workers == 3
