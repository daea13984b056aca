"""
Headless CLI entry point for the FOCT Volume Converter.

Subcommands:
    convert   enhance FOCT files and write NIfTI volumes (recovering
              non-standard layouts when the standard read fails)
    match     histogram-match FOCT files to reference image corpora
    diagnose  inspect files that fail conversion
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional


def _configure_headless_vtk() -> None:
    """Keep PyVista offscreen; the .vti exporter never opens a window."""
    import os

    if not (os.environ.get("DISPLAY") or os.environ.get("WAYLAND_DISPLAY")):
        os.environ.setdefault("PYVISTA_OFF_SCREEN", "true")


_configure_headless_vtk()


from core import ConversionDTO, HistogramParams, VolumeReadError
from core.batch import BatchSummary, find_foct_files, run_batch
from core.progress import ProgressBus, TerminalProgressObserver


def _print_summary(summary: BatchSummary) -> None:
    print(f"\nBatch complete in {summary.elapsed:.2f}s")
    print(f"  Total:     {summary.total}")
    print(f"  Succeeded: {len(summary.succeeded)} ({summary.success_rate:.1f}%)")
    print(f"  Recovered: {len(summary.recovered)}")
    print(f"  Failed:    {len(summary.failed)}")

    for outcome in summary.outcomes:
        status = "OK" if outcome.ok else f"FAILED [{outcome.error_kind.value}]"
        print(f"  - {outcome.source}: {status} ({outcome.mode})")
        if not outcome.ok:
            print(f"      {outcome.message}")
        for issue in outcome.issues:
            print(f"      ! {issue.kind.value}: {issue.message}")
        for name, metrics in outcome.metrics.items():
            print(f"      {name}: correlation={metrics.correlation:.4f} "
                  f"bhattacharyya={metrics.bhattacharyya_distance:.4f} "
                  f"kl={metrics.kl_divergence:.4f}")
        for path in outcome.written:
            print(f"      -> {path}")


def _convert(dto: ConversionDTO, report: Optional[str]) -> int:
    progress_bus = ProgressBus().subscribe(TerminalProgressObserver(show_stages=False))
    summary = run_batch(dto, progress_bus=progress_bus)
    _print_summary(summary)

    if report:
        with open(report, "w", encoding="utf-8") as fh:
            json.dump(summary.to_dict(), fh, indent=2)
        print(f"Report written to {report}")

    if summary.total == 0:
        print(f"No {dto.loader_type} inputs found at {dto.input_path!r}")
        return 1
    return 0 if not summary.failed else 1


def _diagnose(paths: List[str]) -> int:
    from loaders.diagnostics import diagnose_file, format_diagnosis

    files: List[str] = []
    for path in paths:
        files.extend(find_foct_files(path) or [path])

    failures = 0
    for path in files:
        try:
            diagnosis = diagnose_file(path)
        except VolumeReadError as exc:
            print(f"File: {path}\n  Cannot read: {exc}\n")
            failures += 1
            continue
        print(format_diagnosis(diagnosis))
        print()
    return 0 if failures == 0 else 1


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", metavar="FILE", help="YAML or JSON config file. Overrides other flags.")
    parser.add_argument("--input", metavar="PATH", default="", help="FOCT file or directory.")
    parser.add_argument("--loader", metavar="TYPE", default="foct", help="Loader type: foct | dummy.")
    parser.add_argument("--output", metavar="DIR", default=None, help="Output directory.")
    parser.add_argument("--formats", metavar="FMT", nargs="+", default=["nii"],
                        help="Export formats: nii npy tiff vti (space-separated).")
    parser.add_argument("--no-preview", action="store_true", help="Do not write middle-slice PNG previews.")
    parser.add_argument("--element-size", metavar="BYTES", type=int, default=4, help="Bytes per sample.")
    parser.add_argument("--workers", metavar="N", type=int, default=2, help="Files converted concurrently.")
    parser.add_argument("--report", metavar="FILE", default=None, help="Write a JSON batch report.")
    parser.add_argument("--dry-run", action="store_true", help="Print resolved config without running.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python cli.py",
        description="Headless FOCT volume converter",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    convert = sub.add_parser("convert", help="Enhance and convert FOCT volumes.",
                             formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    _add_common(convert)
    convert.add_argument("--recover", action="store_true",
                         help="Use the recovery path (any exact layout, blended enhancement) for every file.")
    convert.add_argument("--no-fallback", action="store_true",
                         help="Do not retry unrecognized files with the recovery path.")

    match = sub.add_parser("match", help="Histogram-match FOCT volumes to reference corpora.",
                           formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    _add_common(match)
    match.add_argument("--target", metavar="NAME=DIR", action="append", default=[],
                       help="Reference corpus (repeatable).")
    match.add_argument("--sample-size", metavar="N", type=int, default=100, help="Images sampled per corpus.")
    match.add_argument("--seed", metavar="N", type=int, default=42, help="Sampling seed.")
    match.add_argument("--sigma", metavar="S", type=float, default=2.0, help="Histogram smoothing sigma.")
    match.add_argument("--alpha", metavar="A", type=float, default=0.7, help="Mapping jump damping factor.")
    match.add_argument("--no-post-processing", action="store_true", help="Skip median filter and slice blending.")

    diagnose = sub.add_parser("diagnose", help="Inspect files that fail conversion.")
    diagnose.add_argument("paths", nargs="+", metavar="PATH", help="FOCT files or directories.")
    diagnose.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return parser


def _parse_targets(items: List[str], parser: argparse.ArgumentParser):
    targets = []
    for item in items:
        name, sep, root = item.partition("=")
        if not sep or not name or not root:
            parser.error(f"--target expects NAME=DIR, got {item!r}")
        targets.append((name, root))
    return tuple(targets)


def _resolve_dto(args: argparse.Namespace, parser: argparse.ArgumentParser) -> ConversionDTO:
    """Resolve DTO from config file or inline CLI flags."""
    if args.config:
        cfg_path = args.config
        if cfg_path.endswith(".json"):
            return ConversionDTO.from_json(cfg_path)
        return ConversionDTO.from_yaml(cfg_path)

    if not args.input:
        parser.error("Provide --config FILE or --input PATH")

    common = dict(
        input_path=args.input,
        loader_type=args.loader,
        element_size=args.element_size,
        output_dir=args.output,
        export_formats=tuple(args.formats),
        write_preview=not args.no_preview,
        max_workers=args.workers,
    )
    if args.command == "convert":
        return ConversionDTO(
            mode="recover" if args.recover else "enhance",
            recover_failed=not args.no_fallback,
            **common,
        )

    histogram = HistogramParams(
        sample_size=args.sample_size,
        seed=args.seed,
        smoothing_sigma=args.sigma,
        mapping_smooth_factor=args.alpha,
        enable_post_processing=not args.no_post_processing,
    )
    return ConversionDTO(
        mode="match",
        targets=_parse_targets(args.target, parser),
        histogram=histogram,
        **common,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(name)s: %(message)s",
    )

    if args.command == "diagnose":
        return _diagnose(args.paths)

    try:
        dto = _resolve_dto(args, parser)
    except ValueError as exc:
        parser.error(str(exc))

    if args.dry_run:
        print("Resolved ConversionDTO:")
        print(json.dumps(dto.to_dict(), indent=2))
        return 0

    print("=" * 60)
    print("FOCT Volume Converter - Headless Batch Processor")
    print("=" * 60)

    try:
        return _convert(dto, args.report)
    except KeyboardInterrupt:
        print("\nAborted by user.")
        return 1
    except Exception as exc:
        import traceback

        print(f"\nPipeline failed: {type(exc).__name__}: {exc}")
        traceback.print_exc()
        return 2


if __name__ == "__main__":
    sys.exit(main())
