"""Export failure taxonomy.

Primary-strategy failures (``EncoderUnavailable``, ``EncodeFailure``,
``MuxFinalizeFailure``) are recovered by falling back. Everything else
propagates to the caller.
"""

from typing import Optional


class ExportError(Exception):
    """Base class for reel export failures."""


class EmptyReelError(ExportError):
    """The reel has no slides, so there is nothing to encode."""


class EncoderUnavailable(ExportError):
    """The primary push encoder is not available on this host."""


class EncodeFailure(ExportError):
    """The primary encoder failed while configuring, encoding or flushing."""


class MuxFinalizeFailure(ExportError):
    """The container could not be finalized after encoding."""


class FallbackUnsupportedContainer(ExportError):
    """No capture container is supported for the fallback recorder."""


class RecorderFailure(ExportError):
    """The fallback recorder failed."""


class RenderFailure(ExportError):
    """Drawing a frame raised. Aborts the export in either strategy."""

    def __init__(self, frame: int, t: float, cause: Optional[BaseException] = None):
        self.frame = frame
        self.t = t
        super().__init__(f"Rendering frame {frame} (t={t:.3f}s) failed: {cause}")


PRIMARY_RECOVERABLE = (EncoderUnavailable, EncodeFailure, MuxFinalizeFailure)
