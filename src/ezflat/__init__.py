from typing import Sequence

from .analysis import (
    AnalysisReport,
    FlatPattern,
    MeshAnalysis,
    analyze_drawing,
    analyze_file,
    analyze_mesh,
    analyze_polyline,
    merge_analyses,
)
from .convert import ConvertResult, to_dxf
from .document import Drawing, parse, read
from .entity import Primitive
from .errors import EmptyDrawingError, EzflatError, InputFormatError, TriangulationError
from .mesh import Mesh, read_stl
from .options import AnalysisOptions, ParseOptions

__all__ = [
    "read",
    "parse",
    "Drawing",
    "Primitive",
    "Mesh",
    "read_stl",
    "analyze_drawing",
    "analyze_mesh",
    "analyze_polyline",
    "analyze_file",
    "merge_analyses",
    "AnalysisReport",
    "MeshAnalysis",
    "FlatPattern",
    "to_dxf",
    "ConvertResult",
    "ParseOptions",
    "AnalysisOptions",
    "EzflatError",
    "InputFormatError",
    "EmptyDrawingError",
    "TriangulationError",
]


def main(argv: Sequence[str] | None = None) -> int:
    from ezflat.cli import main as cli_main

    return cli_main(argv)
