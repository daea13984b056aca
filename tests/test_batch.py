import json
import os

import numpy as np
import pytest
from skimage import io

from core.batch import BatchSummary, find_foct_files, process_file, run_batch, sample_targets
from core.base import FileOutcome
from core.dto import ConversionDTO, HistogramParams
from core.errors import ErrorKind
from core.progress import ProgressBus
from loaders.foct import encode_volume


def _write_recoverable(path):
    volume = np.random.default_rng(0).uniform(0.0, 1.0, size=(50, 60, 70)).astype(np.float32)
    path.write_bytes(encode_volume(volume))
    return str(path)


def _write_unrecognizable(path):
    path.write_bytes(bytes(7919 * 4))
    return str(path)


def _write_corpus(root):
    root.mkdir(parents=True)
    rng = np.random.default_rng(3)
    for i in range(4):
        img = rng.integers(40, 220, size=(16, 16), dtype=np.uint8)
        io.imsave(str(root / f"ref_{i}.png"), img, check_contrast=False)
    return str(root)


def test_find_foct_files(tmp_path):
    for name in ("b.foct", "a.foct", "notes.txt"):
        (tmp_path / name).write_bytes(b"")
    assert [os.path.basename(p) for p in find_foct_files(str(tmp_path))] == ["a.foct", "b.foct"]
    assert find_foct_files(str(tmp_path / "a.foct")) == [str(tmp_path / "a.foct")]
    assert find_foct_files(str(tmp_path / "missing")) == []


def test_unrecognized_file_is_rerouted_to_recovery(tmp_path):
    path = _write_recoverable(tmp_path / "odd.foct")
    outcome = process_file(path, ConversionDTO(input_path=path))

    assert outcome.ok
    assert outcome.mode == "recover"
    assert outcome.issues[0].kind is ErrorKind.FORMAT_UNRECOGNIZED
    assert outcome.issues[0].message.startswith("Standard read failed")
    assert outcome.output.raw_data.shape == (50, 60, 70)
    assert outcome.output.metadata["Enhancement"] == "blended"
    assert outcome.output.metadata["ShapeSource"] == "generic"


def test_rerouting_can_be_disabled(tmp_path):
    path = _write_recoverable(tmp_path / "odd.foct")
    outcome = process_file(path, ConversionDTO(input_path=path, recover_failed=False))
    assert not outcome.ok
    assert outcome.error_kind is ErrorKind.FORMAT_UNRECOGNIZED
    assert outcome.mode == "enhance"


def test_missing_file_fails_with_io_error(tmp_path):
    outcome = process_file(str(tmp_path / "missing.foct"), ConversionDTO())
    assert not outcome.ok
    assert outcome.error_kind is ErrorKind.IO
    assert outcome.output is None


def test_batch_isolates_failures(tmp_path):
    _write_recoverable(tmp_path / "a_good.foct")
    _write_unrecognizable(tmp_path / "b_bad.foct")
    out_dir = tmp_path / "out"
    dto = ConversionDTO(input_path=str(tmp_path), output_dir=str(out_dir), write_preview=False)

    events = []
    summary = run_batch(dto, progress_bus=ProgressBus().subscribe(events.append))

    assert summary.total == 2
    good, bad = summary.outcomes
    assert good.ok and os.path.basename(good.source) == "a_good.foct"
    assert good.output is None
    assert [os.path.basename(p) for p in good.written] == ["a_good.nii"]
    assert (out_dir / "a_good.nii").exists()
    assert not bad.ok
    assert bad.error_kind is ErrorKind.FORMAT_UNRECOGNIZED
    assert len(summary.succeeded) == 1
    assert len(summary.recovered) == 1
    assert summary.success_rate == pytest.approx(50.0)
    assert summary.failures_by_kind() == {ErrorKind.FORMAT_UNRECOGNIZED: 1}
    batch_events = [e for e in events if e.channel == "batch"]
    assert batch_events[-1].percent == 100
    assert {e.source for e in events if e.channel == "stage"} == {"a_good.foct", "b_bad.foct"}


def test_batch_keeps_outputs_on_request(tmp_path):
    summary = run_batch(ConversionDTO(loader_type="dummy", input_path="8x8x6"), keep_outputs=True)
    assert summary.outcomes[0].output.raw_data.shape == (8, 8, 6)


def test_empty_batch():
    summary = run_batch(ConversionDTO(), files=[])
    assert summary.total == 0
    assert summary.success_rate == 0.0


def test_match_batch_with_missing_corpus(tmp_path):
    dto = ConversionDTO(loader_type="dummy", input_path="8x8x6", mode="match",
                        targets=(("gone", str(tmp_path / "nope")),))
    summary = run_batch(dto)
    outcome = summary.outcomes[0]
    assert outcome.ok
    assert outcome.metrics == {}
    assert [i.kind for i in outcome.issues] == [ErrorKind.TARGET_UNAVAILABLE]


def test_match_batch_reports_metrics_and_tables(tmp_path):
    corpus = _write_corpus(tmp_path / "corpus")
    dto = ConversionDTO(
        loader_type="dummy",
        input_path="16x12x6",
        mode="match",
        targets=(("ref", corpus),),
        histogram=HistogramParams(sample_size=10),
        output_dir=str(tmp_path / "out"),
        write_preview=False,
    )
    summary = run_batch(dto)
    outcome = summary.outcomes[0]

    assert outcome.ok
    assert set(outcome.metrics) == {"ref"}
    assert -1.0 <= outcome.metrics["ref"].correlation <= 1.0
    assert len(outcome.mapping_tables["ref"]) == 6
    assert all(table.is_monotonic() for table in outcome.mapping_tables["ref"])
    assert outcome.matched == {}
    assert (tmp_path / "out" / "16x12x6_ref.nii").exists()

    report = json.loads(json.dumps(summary.to_dict()))
    assert report["succeeded"] == 1
    assert set(report["files"][0]["metrics"]["ref"]) == {"correlation", "bhattacharyya_distance", "kl_divergence"}


def test_sample_targets(tmp_path):
    corpus = _write_corpus(tmp_path / "corpus")
    dto = ConversionDTO(mode="match", targets=(("ref", corpus), ("gone", str(tmp_path / "nope"))))
    targets = sample_targets(dto)
    assert targets["ref"].files_used == 4
    assert targets["gone"] is None


def test_summary_report_is_json_serializable():
    summary = BatchSummary(outcomes=[
        FileOutcome.success("a.foct", None, mode="enhance"),
        FileOutcome.failed("b.foct", ErrorKind.IO, "gone", mode="enhance"),
    ], elapsed=1.23456)
    report = json.loads(json.dumps(summary.to_dict()))
    assert report["total"] == 2
    assert report["failed"] == 1
    assert report["elapsed_seconds"] == 1.235
    assert report["files"][1]["error_kind"] == "IOError"
