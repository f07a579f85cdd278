class PipelineError(Exception):
    """Base error for the landmark pipeline; also used for uncategorized failures."""

    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str = ""):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return self.args[0]


class EncodingError(PipelineError):
    default_message = "Could not encode the image."


class DecodingError(PipelineError):
    default_message = "Could not decode the audio."


class RecognitionError(PipelineError):
    default_message = "Could not identify a landmark in this image."


class EnrichmentError(PipelineError):
    default_message = "Failed to retrieve landmark details."


class NarrationError(PipelineError):
    default_message = "Failed to generate narration."


class PipelineBusyError(PipelineError):
    default_message = "An analysis is already in progress."


class InvalidTransitionError(PipelineError):
    default_message = "Invalid pipeline transition."
