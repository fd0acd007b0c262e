# core/exceptions.py
"""Exception hierarchy for the Prosit generation pipeline."""

from __future__ import annotations


class PrositError(Exception):
    """Base class for all pipeline errors."""


class JsonExtractionError(PrositError, ValueError):
    """Raised when no usable JSON value can be recovered from LLM text."""


class NoJsonFoundError(JsonExtractionError):
    """The text contains no opening brace or bracket."""


class UnparsableJsonError(JsonExtractionError):
    """A JSON candidate was found but could not be repaired into valid JSON."""


class MissingPrerequisiteError(PrositError):
    """A stage needs an upstream document that is not in shared memory."""

    def __init__(self, stage: str, missing: str) -> None:
        self.stage = stage
        self.missing = missing
        super().__init__(
            f"{stage}: required upstream document '{missing}' is missing from shared memory."
        )


class RenderError(PrositError):
    """The office document renderer failed to write its output file."""

    def __init__(self, output_path: str, reason: str) -> None:
        self.output_path = output_path
        super().__init__(f"Failed to render {output_path}: {reason}")


class DocumentSlotError(PrositError):
    """A document slot was written twice during the same run."""


class PipelineCancelledError(PrositError):
    """The caller asked the pipeline to stop before the next stage."""


class LLMServiceError(PrositError):
    """The LLM endpoint returned an error or an unusable response."""


class UnsupportedFormatError(PrositError, ValueError):
    """An imported file has a format the text extractor cannot read."""
