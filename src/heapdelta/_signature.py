"""Symbolization of the live Python stack into a CallStackSignature."""

import sys

from heapdelta._model import CallStackSignature, Frame

# Same depth cap Go's runtime applies to memory profile stacks.
MAX_STACK_DEPTH = 32


def capture_signature(skip: int = 0, max_depth: int = MAX_STACK_DEPTH) -> CallStackSignature:
    """Capture the caller's stack as a signature, innermost frame first.

    Args:
        skip: Number of additional caller frames to drop (0 = the function
            calling capture_signature is the leaf)
        max_depth: Maximum number of frames kept (MUST be >= 1)
    """
    assert skip >= 0, f"skip must be non-negative: {skip}"
    assert max_depth >= 1, f"max_depth must be >= 1: {max_depth}"

    frame = sys._getframe(1 + skip)
    frames: list[Frame] = []
    while frame is not None and len(frames) < max_depth:
        code = frame.f_code
        frames.append(Frame(code.co_qualname, code.co_filename, frame.f_lineno))
        frame = frame.f_back
    return CallStackSignature(tuple(frames))
