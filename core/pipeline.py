"""
Per-file conversion pipeline shared by the CLI and the batch runner.

Stages:
    enhance / recover:  load -> normalize -> enhance -> export
    match:              load -> normalize -> match -> evaluate -> export
"""

from __future__ import annotations

import inspect
import os
from typing import Any, Callable, Dict, Literal, Mapping, Optional, Tuple

from core.base import VolumeData
from core.dag import DAGNode, SimpleDAGExecutor
from core.dto import ConversionDTO
from core.errors import ErrorKind, Issue
from core.progress import ProgressBus
from loaders.dimensions import ProbeStrategy


PipelineStage = Literal["load", "normalize", "enhance", "match", "evaluate", "export"]

MODE_STAGES: Dict[str, Tuple[PipelineStage, ...]] = {
    "enhance": ("load", "normalize", "enhance", "export"),
    "recover": ("load", "normalize", "enhance", "export"),
    "match":   ("load", "normalize", "match", "evaluate", "export"),
}

# Standard conversion only accepts the canonical layout; recovery and
# matching accept any exactly-sized layout.
PROBE_STRATEGY_BY_MODE: Dict[str, ProbeStrategy] = {
    "enhance": ProbeStrategy.STRICT,
    "recover": ProbeStrategy.FULL,
    "match":   ProbeStrategy.FULL,
}

ENHANCEMENT_BY_MODE = {
    "enhance": "adaptive",
    "recover": "blended",
}


def _noop_progress(_percent: int, _message: str) -> None:
    return


def resolve_pipeline_stages(mode: str, include_export: bool = True) -> Tuple[PipelineStage, ...]:
    try:
        stages = MODE_STAGES[mode]
    except KeyError:
        allowed = ", ".join(MODE_STAGES)
        raise ValueError(f"Unknown mode {mode!r}. Expected one of: {allowed}.") from None
    if not include_export:
        stages = tuple(s for s in stages if s != "export")
    return stages


def output_stem(source: str) -> str:
    """File name without directory and extension."""
    return os.path.splitext(os.path.basename(source))[0] or "volume"


def _resolve_dummy_shape(source: str) -> Tuple[int, int, int]:
    """
    Shape for the synthetic loader, parsed from ``"DxWxH"``.

    Anything else falls back to the default synthetic shape.
    """
    from loaders.dummy import DEFAULT_SYNTHETIC_SHAPE

    try:
        shape = tuple(int(v) for v in str(source).lower().split("x"))
    except ValueError:
        return tuple(DEFAULT_SYNTHETIC_SHAPE)
    if len(shape) == 3 and min(shape) > 0:
        return shape
    return tuple(DEFAULT_SYNTHETIC_SHAPE)


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

def _stage_load(source: str, dto: ConversionDTO, progress: Callable[[int, str], None]) -> VolumeData:
    loader_type = (dto.loader_type or "foct").lower()
    progress(0, f"Loading {os.path.basename(source) or source} via {loader_type}...")

    if loader_type == "dummy":
        from loaders.dummy import SyntheticFoctLoader

        return SyntheticFoctLoader(shape=_resolve_dummy_shape(source)).load(source, callback=progress)

    if loader_type == "foct":
        from loaders.foct import FoctLoader

        if not source:
            raise ValueError("A source path is required when loader_type='foct'.")
        loader = FoctLoader(
            strategy=PROBE_STRATEGY_BY_MODE[dto.mode],
            element_size=dto.element_size,
            flip_depth=dto.flip_depth,
        )
        return loader.load(source, callback=progress)

    raise ValueError(f"Unknown loader_type: {dto.loader_type!r}. Supported: 'foct', 'dummy'.")


def _stage_normalize(data: VolumeData, progress: Callable[[int, str], None]):
    from processors.normalize import normalize_volume

    if data.raw_data is None:
        raise ValueError("Normalize stage requires voxel data (raw_data).")
    progress(0, "Normalizing volume...")
    normalized = normalize_volume(data.raw_data)
    if normalized.degenerate:
        data.issues.append(Issue(ErrorKind.DEGENERATE_RANGE, f"Constant volume with value {normalized.vmin:.6g}"))
    progress(100, f"Range [{normalized.vmin:.4g}, {normalized.vmax:.4g}]")
    return normalized


def _invoke_processor(processor: Any, data: VolumeData, progress: Callable[[int, str], None], **kwargs: Any) -> VolumeData:
    """Call ``processor.process``, passing only the keyword arguments its signature accepts."""
    params = inspect.signature(processor.process).parameters
    accepts_varkw = any(p.kind == inspect.Parameter.VAR_KEYWORD for p in params.values())

    call_kwargs: Dict[str, Any] = {"callback": progress}
    for key, value in kwargs.items():
        if accepts_varkw or key in params:
            call_kwargs[key] = value
    return processor.process(data, **call_kwargs)


def _stage_enhance(data: VolumeData, normalized, dto: ConversionDTO,
                   progress: Callable[[int, str], None]) -> VolumeData:
    from processors.contrast import ContrastEnhancementProcessor

    processor = ContrastEnhancementProcessor(ENHANCEMENT_BY_MODE[dto.mode])
    return _invoke_processor(processor, data, progress, normalized=normalized)


def _stage_match(data: VolumeData, normalized, dto: ConversionDTO,
                 targets: Mapping[str, Any], progress: Callable[[int, str], None]) -> Dict[str, VolumeData]:
    """
    Match the volume against every available target.

    ``targets`` maps target name to a TargetHistogram, or None when that
    target could not be sampled; such targets are skipped with an issue.
    """
    from processors.matching import HistogramMatchingProcessor

    matched: Dict[str, VolumeData] = {}
    names = list(targets)
    if not names:
        data.issues.append(Issue(ErrorKind.TARGET_UNAVAILABLE, "No matching targets configured"))

    for i, name in enumerate(names):
        target = targets[name]
        if target is None:
            data.issues.append(Issue(ErrorKind.TARGET_UNAVAILABLE, f"Target '{name}' unavailable; skipped"))
            continue

        lo, hi = int(100 * i / len(names)), int(100 * (i + 1) / len(names))

        def _target_progress(percent: int, message: str, lo: int = lo, hi: int = hi) -> None:
            progress(lo + int((hi - lo) * percent / 100), message)

        processor = HistogramMatchingProcessor(target.histogram, dto.histogram, target_name=name)
        matched[name] = _invoke_processor(processor, data, _target_progress, normalized=normalized)

    progress(100, f"Matched {len(matched)}/{len(names)} targets.")
    return matched


def _stage_evaluate(matched: Mapping[str, VolumeData], targets: Mapping[str, Any],
                    progress: Callable[[int, str], None]) -> Dict[str, Any]:
    from processors.quality import compute_quality_metrics

    progress(0, "Evaluating match quality...")
    metrics = {
        name: compute_quality_metrics(result.raw_data, targets[name].histogram)
        for name, result in matched.items()
    }
    progress(100, "Evaluation complete.")
    return metrics


def _stage_export(deps: Dict[str, Any], source: str, dto: ConversionDTO,
                  progress: Callable[[int, str], None]):
    from exporters.nifti import ExportResult, NiftiExporter

    if not dto.output_dir:
        progress(100, "No output directory; export skipped.")
        return ExportResult()

    exporter = NiftiExporter(dto.output_dir, dto.export_formats, dto.write_preview)
    stem = output_stem(source)
    if "enhance" in deps:
        return exporter.export(deps["enhance"], stem, callback=progress)

    combined = ExportResult()
    matched = deps.get("match") or {}
    for name, volume in matched.items():
        result = exporter.export(volume, f"{stem}_{name}")
        combined.written.extend(result.written)
        combined.issues.extend(result.issues)
    progress(100, f"Exported {len(combined.written)} files.")
    return combined


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def build_volume_pipeline(
    dto: ConversionDTO,
    source: str,
    *,
    input_data: Optional[VolumeData] = None,
    targets: Optional[Mapping[str, Any]] = None,
    include_export: bool = True,
    progress_bus: Optional[ProgressBus] = None,
) -> SimpleDAGExecutor:
    """
    Build the DAG for one file.

    Args:
        dto: Conversion configuration; ``dto.mode`` selects the stages.
        source: Path of the file (or synthetic shape for the dummy loader).
        input_data: Preloaded data; the load stage returns it unchanged.
        targets: Target name -> TargetHistogram (or None), match mode only.
        include_export: Whether to add the export stage.
        progress_bus: Optional progress event bus.
    """
    stages = resolve_pipeline_stages(dto.mode, include_export=include_export)
    targets = targets or {}
    dag = SimpleDAGExecutor()

    def stage_progress(stage: PipelineStage) -> Callable[[int, str], None]:
        if progress_bus is None:
            return _noop_progress
        return progress_bus.stage_callback(stage, source)

    dag.add(DAGNode(
        name="load",
        fn=lambda _deps: input_data if input_data is not None else _stage_load(source, dto, stage_progress("load")),
    ))
    dag.add(DAGNode(
        name="normalize",
        fn=lambda deps: _stage_normalize(deps["load"], stage_progress("normalize")),
        depends_on=("load",),
    ))

    if "enhance" in stages:
        dag.add(DAGNode(
            name="enhance",
            fn=lambda deps: _stage_enhance(deps["load"], deps["normalize"], dto, stage_progress("enhance")),
            depends_on=("load", "normalize"),
        ))

    if "match" in stages:
        dag.add(DAGNode(
            name="match",
            fn=lambda deps: _stage_match(deps["load"], deps["normalize"], dto, targets, stage_progress("match")),
            depends_on=("load", "normalize"),
        ))
        dag.add(DAGNode(
            name="evaluate",
            fn=lambda deps: _stage_evaluate(deps["match"], targets, stage_progress("evaluate")),
            depends_on=("match",),
        ))

    if "export" in stages:
        produced = ("enhance",) if "enhance" in stages else ("match", "evaluate")
        dag.add(DAGNode(
            name="export",
            fn=lambda deps: _stage_export(deps, source, dto, stage_progress("export")),
            depends_on=produced,
        ))

    return dag


def run_volume_pipeline(
    dto: ConversionDTO,
    source: str,
    *,
    input_data: Optional[VolumeData] = None,
    targets: Optional[Mapping[str, Any]] = None,
    include_export: bool = True,
    progress_bus: Optional[ProgressBus] = None,
    dag_progress: Optional[Callable[[int, str], None]] = None,
) -> Dict[str, Any]:
    """Execute the pipeline for one file and return stage outputs keyed by stage name."""
    dag = build_volume_pipeline(
        dto,
        source,
        input_data=input_data,
        targets=targets,
        include_export=include_export,
        progress_bus=progress_bus,
    )
    return dag.run(progress=dag_progress)


__all__ = [
    "PipelineStage",
    "MODE_STAGES",
    "PROBE_STRATEGY_BY_MODE",
    "ENHANCEMENT_BY_MODE",
    "resolve_pipeline_stages",
    "output_stem",
    "build_volume_pipeline",
    "run_volume_pipeline",
]
