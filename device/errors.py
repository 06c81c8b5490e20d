from __future__ import annotations


class WorkflowError(RuntimeError):
    """Base class for failures surfaced by the diagnosis workflow."""

    user_message = "Something went wrong. Please try again."


class PreconditionError(WorkflowError):
    """An operation was invoked while the workflow was in the wrong state."""

    user_message = "Please select an image first!"


class AcquisitionError(WorkflowError):
    user_message = "Could not load the image. Please try again."


class ClassificationError(WorkflowError):
    user_message = "Failed to upload the image. Please try again."


class DetailLookupError(WorkflowError):
    user_message = "Failed to fetch disease data. Please try again."


__all__ = [
    "WorkflowError",
    "PreconditionError",
    "AcquisitionError",
    "ClassificationError",
    "DetailLookupError",
]
