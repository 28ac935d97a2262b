"""Custom exceptions used across imagediff."""

__all__ = [
    "ImageDiffError",
    "DimensionMismatchError",
    "RecognitionError",
    "SubmissionError",
    "RemoteTaskFailedError",
    "RemoteTaskLostError",
    "RemoteTaskStuckError",
    "BatchTimeoutError",
]


class ImageDiffError(Exception):
    """Base class for every error raised by imagediff."""

    pass


class DimensionMismatchError(ImageDiffError, ValueError):
    """Raised when the two rasters being compared differ in size."""

    def __init__(self, size_a, size_b):
        self.size_a = tuple(size_a)
        self.size_b = tuple(size_b)
        super().__init__(
            "Image sizes do not match: %dx%d vs %dx%d" % (self.size_a + self.size_b)
        )


class RecognitionError(ImageDiffError):
    """Base class for problems reported by the remote recognition service.

    ``kind`` is the stable identifier written to ``LineResult.error_kind``
    when the problem ends up recorded against a line.
    """

    kind = "recognition_error"


class SubmissionError(RecognitionError):
    """A recognition task could not be submitted."""

    kind = "submission_failure"


class RemoteTaskFailedError(RecognitionError):
    """The service reported a task as failed."""

    kind = "remote_failure"


class RemoteTaskLostError(RecognitionError):
    """The service has no record of a task after the grace period."""

    kind = "remote_lost"


class RemoteTaskStuckError(RecognitionError):
    """A task stopped reporting progress."""

    kind = "remote_stuck"


class BatchTimeoutError(RecognitionError):
    """A batch did not resolve every line before the polling deadline."""

    kind = "batch_timeout"
