"""FrameReader: turn a video into a screenplay-style script."""

__version__ = "1.0.0"
