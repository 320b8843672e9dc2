from __future__ import annotations

import argparse
import json
import logging
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Sequence

from .analysis import AnalysisReport, analyze_file
from .colors import rgb_to_hex
from .convert import to_dxf
from .document import PRIMITIVE_TYPES, read
from .options import AnalysisOptions, ParseOptions
from .units import MESH_UNITS_TO_MM


def _package_version() -> str:
    try:
        return version("ezflat")
    except PackageNotFoundError:
        return "0.0.0"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ezflat",
        description="Inspect DXF drawings and measure cut paths and bends of flat parts.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_package_version()}",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log parser and analysis details to stderr.",
    )
    subparsers = parser.add_subparsers(dest="command")

    inspect_parser = subparsers.add_parser("inspect", help="Show basic DXF information.")
    inspect_parser.add_argument("path", help="Path to DXF file.")
    _add_parse_arguments(inspect_parser)

    analyze_parser = subparsers.add_parser(
        "analyze",
        help="Measure perimeter, holes and bends of DXF or STL files.",
    )
    analyze_parser.add_argument("paths", nargs="+", help="DXF or STL files, processed in order.")
    analyze_parser.add_argument(
        "--unit",
        default="mm",
        choices=sorted(MESH_UNITS_TO_MM),
        help="Unit of STL coordinates (DXF files use their $INSUNITS header).",
    )
    analyze_parser.add_argument(
        "--json",
        action="store_true",
        help="Print one JSON report per file instead of key: value lines.",
    )
    analyze_parser.add_argument(
        "--planar-angle",
        type=float,
        default=AnalysisOptions.planar_angle_threshold,
        help="Maximum normal deviation in degrees for faces to share a patch.",
    )
    analyze_parser.add_argument(
        "--merge-tol",
        type=float,
        default=AnalysisOptions.vertex_merge_tolerance,
        help="Grid size used to weld coincident mesh vertices.",
    )
    analyze_parser.add_argument(
        "--bend-bucket",
        type=float,
        default=AnalysisOptions.bend_angle_tolerance,
        help="Bend histogram bucket width in degrees.",
    )
    _add_parse_arguments(analyze_parser)

    convert_parser = subparsers.add_parser(
        "convert",
        help="Rewrite the flattened DXF geometry using ezdxf as the writing backend.",
    )
    convert_parser.add_argument("input_path", help="Path to DXF file.")
    convert_parser.add_argument("output_path", help="Path to output DXF file.")
    convert_parser.add_argument(
        "--types",
        default=None,
        help=f'Primitive filter passed to query(), e.g. "LINE ARC". Known: {" ".join(PRIMITIVE_TYPES)}.',
    )
    convert_parser.add_argument(
        "--dxf-version",
        default="R2010",
        help="DXF version for ezdxf.new(), e.g. R2000/R2010/R2018.",
    )
    convert_parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail if any primitive cannot be converted.",
    )
    _add_parse_arguments(convert_parser)
    return parser


def _add_parse_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--circle-segments",
        type=int,
        default=ParseOptions.circle_segments,
        help="Segments used to tessellate full circles (minimum 16).",
    )
    parser.add_argument(
        "--arc-angle",
        type=float,
        default=ParseOptions.arc_segment_angle,
        help="Maximum arc step in degrees for arcs and bulges.",
    )


def _parse_options(args: argparse.Namespace) -> ParseOptions:
    return ParseOptions(
        circle_segments=int(args.circle_segments),
        arc_segment_angle=float(args.arc_angle),
    )


def _run_inspect(path: str, options: ParseOptions) -> int:
    file_path = Path(path)
    if not file_path.exists():
        print(f"error: file not found: {file_path}", file=sys.stderr)
        return 2

    try:
        drawing = read(file_path, options)
    except Exception as exc:
        print(f"error: failed to read DXF: {exc}", file=sys.stderr)
        return 2

    print(f"file: {file_path}")
    print(f"units: {drawing.unit_name}")
    print(f"unit_scale_mm: {drawing.unit_scale:g}")
    print(f"layers: {drawing.layer_count}")
    for name, color in sorted(drawing.layers.items()):
        print(f"layer[{name}]: {rgb_to_hex(color) if color is not None else 'default'}")
    print(f"total_entities: {sum(drawing.entity_counts.values())}")
    for dxftype, count in sorted(drawing.entity_counts.items()):
        print(f"entities[{dxftype}]: {count}")
    print(f"primitives: {len(drawing.primitives)}")
    primitive_counts: dict[str, int] = {}
    for primitive in drawing.primitives:
        primitive_counts[primitive.dxftype] = primitive_counts.get(primitive.dxftype, 0) + 1
    for dxftype in PRIMITIVE_TYPES:
        count = primitive_counts.get(dxftype, 0)
        if count > 0:
            print(f"{dxftype}: {count}")

    dims = drawing.dimensions()
    if dims is not None:
        print("size_mm: " + " x ".join(f"{value:.3f}" for value in dims["mm"]))
        print("size_in: " + " x ".join(f"{value:.3f}" for value in dims["inch"]))
    for note in drawing.warnings():
        print(f"warning: {note}")
    return 0


def _run_analyze(
    paths: Sequence[str],
    *,
    parse_options: ParseOptions,
    options: AnalysisOptions,
    unit: str = "mm",
    as_json: bool = False,
) -> int:
    failures = 0
    for path in paths:
        file_path = Path(path)
        if not file_path.exists():
            print(f"error: file not found: {file_path}", file=sys.stderr)
            failures += 1
            continue
        try:
            report = analyze_file(file_path, options, parse_options=parse_options, unit=unit)
        except Exception as exc:
            print(f"error: failed to analyze {file_path}: {exc}", file=sys.stderr)
            failures += 1
            continue
        if as_json:
            print(json.dumps(report.to_dict(), sort_keys=True))
        else:
            _print_report(file_path, report)
    return 2 if failures else 0


def _print_report(file_path: Path, report: AnalysisReport) -> None:
    print(f"file: {file_path}")
    print(f"outer_perimeter_length: {report.outer_perimeter_length:.3f}")
    print(f"holes: {len(report.holes)}")
    for index, hole in enumerate(report.holes):
        circularity = "n/a" if hole.circularity is None else f"{hole.circularity:.2f}"
        shape = "round" if hole.is_round(report.circularity_threshold) else "feature"
        print(
            f"hole[{index}]: perimeter={hole.length:.3f} "
            f"approx_diameter={hole.diameter:.3f} vertices={hole.vertex_count} "
            f"circularity={circularity} shape={shape}"
        )
    print(f"round_holes: {report.round_hole_count}")
    print(f"features: {report.feature_count}")
    print(f"open_chains: {len(report.open_chains)}")
    print(f"internal_cut_length: {report.internal_cut_length:.3f}")
    print(f"total_cut_length: {report.total_cut_length:.3f}")

    bends = report.bends
    print(f"bends: {bends.count}")
    if bends.count:
        print(
            f"bend_angles: min={bends.min_angle:.1f} max={bends.max_angle:.1f} "
            f"mean={bends.mean_angle:.1f}"
        )
        for key, count in sorted(bends.histogram.items()):
            print(f"bend_histogram[{key:g}]: {count}")
        common = bends.common_angles()
        if common:
            print("common_bend_angles: " + ", ".join(str(angle) for angle in common))

    flat = report.flat_pattern
    if flat is not None:
        print(f"flat_pattern_likely: {'yes' if flat.likely else 'no'}")
        print(f"dominant_plane_axis: {flat.dominant_axis}")


def _run_convert(
    input_path: str,
    output_path: str,
    *,
    options: ParseOptions,
    types: str | None = None,
    dxf_version: str = "R2010",
    strict: bool = False,
) -> int:
    dxf_path = Path(input_path)
    if not dxf_path.exists():
        print(f"error: file not found: {dxf_path}", file=sys.stderr)
        return 2

    try:
        drawing = read(dxf_path, options)
        result = to_dxf(
            drawing,
            output_path,
            types=types,
            dxf_version=dxf_version,
            strict=strict,
        )
    except Exception as exc:
        print(f"error: failed to convert DXF: {exc}", file=sys.stderr)
        return 2

    print(f"input: {result.source_path}")
    print(f"output: {result.output_path}")
    print(f"total_entities: {result.total_entities}")
    print(f"written_entities: {result.written_entities}")
    print(f"skipped_entities: {result.skipped_entities}")
    for dxftype, count in result.skipped_by_type.items():
        print(f"skipped[{dxftype}]: {count}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    try:
        parse_options = _parse_options(args)
        if args.command == "analyze":
            options = AnalysisOptions(
                planar_angle_threshold=float(args.planar_angle),
                vertex_merge_tolerance=float(args.merge_tol),
                bend_angle_tolerance=float(args.bend_bucket),
            )
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    if args.command == "inspect":
        return _run_inspect(args.path, parse_options)
    if args.command == "analyze":
        return _run_analyze(
            args.paths,
            parse_options=parse_options,
            options=options,
            unit=args.unit,
            as_json=bool(args.json),
        )
    if args.command == "convert":
        return _run_convert(
            args.input_path,
            args.output_path,
            options=parse_options,
            types=args.types,
            dxf_version=args.dxf_version,
            strict=bool(args.strict),
        )

    parser.print_help()
    return 0
