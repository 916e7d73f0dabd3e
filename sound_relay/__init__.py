"""
Sound Relay
Real-time PCM transfer pipeline and spectral analysis toolkit.
"""

from .buffers import BufferPool, TransferInterrupted, TransferQueue
from .config import AudioFormat, BufferSettings, PipelineConfig
from .peaks import IndexAndValue, peaks, top_n_peaks
from .pipeline import TransferPipeline
from .spectral import SpectralEngine
from .stages import CaptureStage, PlaybackStage, StageSetupError, StageState

__all__ = [
    'AudioFormat',
    'BufferPool',
    'BufferSettings',
    'CaptureStage',
    'IndexAndValue',
    'PipelineConfig',
    'PlaybackStage',
    'SpectralEngine',
    'StageSetupError',
    'StageState',
    'TransferInterrupted',
    'TransferPipeline',
    'TransferQueue',
    'peaks',
    'top_n_peaks',
]
