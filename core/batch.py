"""
Batch conversion of FOCT files with per-file failure isolation.
"""

from __future__ import annotations

import concurrent.futures
import dataclasses
import logging
import os
import time
from collections import Counter
from dataclasses import dataclass, field
from glob import glob
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from config import FOCT_FILE_EXTENSION
from core.base import FileOutcome
from core.dto import ConversionDTO
from core.errors import ErrorKind, FoctError, FormatUnrecognized, Issue, error_kind_of
from core.pipeline import run_volume_pipeline
from core.progress import ProgressBus

logger = logging.getLogger(__name__)


def find_foct_files(path: str, extension: str = FOCT_FILE_EXTENSION) -> List[str]:
    """A single file, or every ``*.foct`` file in a directory, sorted by name."""
    if os.path.isfile(path):
        return [path]
    if not os.path.isdir(path):
        return []
    return sorted(f for f in glob(os.path.join(path, "*" + extension)) if os.path.isfile(f))


def sample_targets(dto: ConversionDTO,
                   callback: Optional[Callable[[int, str], None]] = None) -> Dict[str, Any]:
    """
    Sample every configured target corpus once.

    Returns:
        Target name -> TargetHistogram, or None when the corpus is missing or
        has no usable image.
    """
    from loaders.reference import ReferenceCorpus
    from processors.target_histogram import TargetHistogramSampler

    sampler = TargetHistogramSampler(dto.histogram)
    targets: Dict[str, Any] = {}
    for i, (name, root) in enumerate(dto.targets):
        if callback: callback(int(100 * i / max(1, len(dto.targets))), f"Sampling target '{name}'...")
        targets[name] = sampler.sample(ReferenceCorpus(root))
        if targets[name] is None:
            logger.warning("Target '%s' (%s) unavailable", name, root)
    if callback: callback(100, f"Sampled {sum(t is not None for t in targets.values())}/{len(targets)} targets")
    return targets


def process_file(source: str,
                 dto: ConversionDTO,
                 targets: Optional[Mapping[str, Any]] = None,
                 progress_bus: Optional[ProgressBus] = None,
                 keep_outputs: bool = True) -> FileOutcome:
    """
    Convert one file and report the outcome.

    Fatal errors become ``FileOutcome.failed``; nothing is raised.  A
    FormatUnrecognized failure in ``enhance`` mode is retried in ``recover``
    mode when ``dto.recover_failed`` is set.
    """
    try:
        return _run(source, dto, targets, progress_bus, keep_outputs)
    except FormatUnrecognized as exc:
        if dto.mode == "enhance" and dto.recover_failed:
            logger.info("%s: %s; retrying with recovery", os.path.basename(source), exc)
            recovered = process_file(source, dataclasses.replace(dto, mode="recover"),
                                     targets, progress_bus, keep_outputs)
            recovered.issues.insert(0, Issue(ErrorKind.FORMAT_UNRECOGNIZED, f"Standard read failed: {exc}"))
            return recovered
        return _failed(source, dto, exc)
    except Exception as exc:
        return _failed(source, dto, exc)


def _failed(source: str, dto: ConversionDTO, exc: Exception) -> FileOutcome:
    kind = error_kind_of(exc)
    if isinstance(exc, (FoctError, OSError)):
        logger.error("%s failed (%s): %s", source, kind.value, exc)
    else:
        logger.exception("%s failed with an unexpected error", source)
    return FileOutcome.failed(source, kind, str(exc), mode=dto.mode)


def _run(source: str, dto: ConversionDTO, targets: Optional[Mapping[str, Any]],
         progress_bus: Optional[ProgressBus], keep_outputs: bool) -> FileOutcome:
    results = run_volume_pipeline(dto, source, targets=targets, progress_bus=progress_bus)

    loaded = results["load"]
    exported = results.get("export")
    issues = list(loaded.issues)
    written: List[str] = []
    if exported is not None:
        issues.extend(exported.issues)
        written.extend(exported.written)

    matched = results.get("match") or {}
    outcome = FileOutcome.success(
        source,
        results.get("enhance"),
        matched=dict(matched),
        issues=issues,
        metrics=dict(results.get("evaluate") or {}),
        mapping_tables={name: v.metadata["MappingTables"] for name, v in matched.items()},
        written=written,
        mode=dto.mode,
    )
    if not keep_outputs:
        outcome.output = None
        outcome.matched = {}
    return outcome


@dataclass
class BatchSummary:
    outcomes: List[FileOutcome] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> List[FileOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> List[FileOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def recovered(self) -> List[FileOutcome]:
        return [o for o in self.outcomes if o.ok and o.mode == "recover"]

    @property
    def success_rate(self) -> float:
        return 100.0 * len(self.succeeded) / self.total if self.total else 0.0

    def failures_by_kind(self) -> Dict[ErrorKind, int]:
        return dict(Counter(o.error_kind for o in self.failed))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": len(self.succeeded),
            "recovered": len(self.recovered),
            "failed": len(self.failed),
            "elapsed_seconds": round(self.elapsed, 3),
            "files": [
                {
                    "source": o.source,
                    "ok": o.ok,
                    "mode": o.mode,
                    "error_kind": o.error_kind.value if o.error_kind else None,
                    "message": o.message,
                    "issues": [{"kind": i.kind.value, "message": i.message} for i in o.issues],
                    "metrics": {name: m.to_dict() for name, m in o.metrics.items()},
                    "written": list(o.written),
                }
                for o in self.outcomes
            ],
        }


def run_batch(dto: ConversionDTO,
              files: Optional[Sequence[str]] = None,
              *,
              targets: Optional[Mapping[str, Any]] = None,
              progress_bus: Optional[ProgressBus] = None,
              keep_outputs: bool = False) -> BatchSummary:
    """
    Convert many files concurrently.

    Files are independent: each one gets its own pipeline and a failure is
    reported in its outcome without affecting the others.  In ``match`` mode
    the target corpora are sampled once for the whole batch.

    Args:
        dto: Conversion configuration.
        files: Files to convert; defaults to ``find_foct_files(dto.input_path)``
            (or the input path itself for the dummy loader).
        targets: Pre-sampled targets; sampled from ``dto.targets`` when None.
        progress_bus: Optional progress bus; receives batch events and the
            per-file stage events labelled with their source file.
        keep_outputs: Keep output volumes on the outcomes.  Off by default so
            a large batch does not hold every converted volume in memory.
    """
    started = time.time()
    batch_progress = progress_bus.batch_callback() if progress_bus else None

    if files is None:
        if dto.loader_type == "dummy":
            files = [dto.input_path or "synthetic"]
        else:
            files = find_foct_files(dto.input_path)
    files = list(files)

    if dto.mode == "match" and targets is None:
        targets = sample_targets(dto, batch_progress)

    outcomes: List[Optional[FileOutcome]] = [None] * len(files)
    if batch_progress: batch_progress(0, f"Converting {len(files)} files ({dto.mode})...")

    with concurrent.futures.ThreadPoolExecutor(max_workers=max(1, dto.max_workers)) as executor:
        futures = {
            executor.submit(process_file, path, dto, targets, progress_bus, keep_outputs): i
            for i, path in enumerate(files)
        }
        done = 0
        for future in concurrent.futures.as_completed(futures):
            index = futures[future]
            outcomes[index] = future.result()
            done += 1
            status = "ok" if outcomes[index].ok else outcomes[index].error_kind.value
            if batch_progress:
                batch_progress(int(100 * done / len(files)), f"{os.path.basename(files[index])}: {status}")

    summary = BatchSummary(outcomes=list(outcomes), elapsed=time.time() - started)
    logger.info("Batch finished: %d/%d succeeded (%d recovered) in %.1fs",
                len(summary.succeeded), summary.total, len(summary.recovered), summary.elapsed)
    return summary


__all__ = [
    "find_foct_files",
    "sample_targets",
    "process_file",
    "BatchSummary",
    "run_batch",
]
