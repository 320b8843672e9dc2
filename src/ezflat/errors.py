from __future__ import annotations


class EzflatError(Exception):
    pass


class InputFormatError(EzflatError, ValueError):
    pass


class EmptyDrawingError(EzflatError, ValueError):
    pass


class TriangulationError(EzflatError, RuntimeError):
    pass
