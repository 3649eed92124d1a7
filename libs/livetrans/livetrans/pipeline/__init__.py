"""Live speech pipeline: segmentation, transcription and reconciliation."""

from livetrans.pipeline.reconciler import TranscriptReconciler
from livetrans.pipeline.segmenter import Segmenter
from livetrans.pipeline.session import LiveSession
from livetrans.pipeline.transcription import TranscriptionClient

__all__ = ["LiveSession", "Segmenter", "TranscriptReconciler", "TranscriptionClient"]
