"""Timestamp-preserving transcript translation and dub alignment."""

from .pipeline import DubbingPipeline, PipelineConfig

__all__ = ["DubbingPipeline", "PipelineConfig"]
