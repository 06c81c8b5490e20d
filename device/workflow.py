from __future__ import annotations

import asyncio
import dataclasses
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Collection, Dict, Protocol

from cloud.api.schemas import DetailRecord

from .capture import DEFAULT_MIME_TYPE, ImageRef, ImageSource
from .errors import (
    AcquisitionError,
    ClassificationError,
    DetailLookupError,
    PreconditionError,
    WorkflowError,
)
from .notices import ConsoleNotifier, Notice, Notifier

logger = logging.getLogger(__name__)

HEALTHY_LABEL = "normal"
DETAIL_LABELS: tuple[str, ...] = ("glaucoma",)


class RemoteClient(Protocol):
    def classify(self, image_bytes: bytes, filename: str, mime_type: str) -> str: ...

    def lookup_detail(self, label: str) -> DetailRecord: ...


class ImageSourceKind(str, Enum):
    LIBRARY = "library"
    CAMERA = "camera"


class WorkflowPhase(str, Enum):
    IDLE = "idle"
    IMAGE_READY = "image_ready"
    CLASSIFYING = "classifying"
    CLASSIFIED = "classified"
    FETCHING_DETAIL = "fetching_detail"
    COMPLETE = "complete"


@dataclass
class WorkflowState:
    image: ImageRef | None = None
    prediction: str | None = None
    is_healthy: bool = False
    detail: DetailRecord | None = None
    classifying: bool = False
    fetching_detail: bool = False

    @property
    def phase(self) -> WorkflowPhase:
        if self.image is None:
            return WorkflowPhase.IDLE
        if self.classifying:
            return WorkflowPhase.CLASSIFYING
        if self.fetching_detail:
            return WorkflowPhase.FETCHING_DETAIL
        if self.detail is not None:
            return WorkflowPhase.COMPLETE
        if self.prediction:
            return WorkflowPhase.CLASSIFIED
        return WorkflowPhase.IMAGE_READY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "image": dataclasses.asdict(self.image) if self.image else None,
            "prediction": self.prediction,
            "is_healthy": self.is_healthy,
            "detail": self.detail.model_dump(mode="json") if self.detail else None,
            "classifying": self.classifying,
            "fetching_detail": self.fetching_detail,
        }


class PredictionChangeRule:
    """Decides when a new prediction should trigger a detail lookup.

    ``observe`` yields a label at most once per distinct consecutive value, so
    re-observing an unchanged prediction never schedules a second fetch.
    """

    def __init__(
        self,
        healthy_label: str = HEALTHY_LABEL,
        detail_labels: Collection[str] = DETAIL_LABELS,
    ) -> None:
        self.healthy_label = healthy_label
        self.detail_labels = frozenset(detail_labels)
        self._last: str | None = None

    def observe(self, prediction: str | None) -> str | None:
        previous, self._last = self._last, prediction
        if not prediction or prediction == previous:
            return None
        if prediction == self.healthy_label or prediction not in self.detail_labels:
            return None
        return prediction

    def reset(self) -> None:
        self._last = None


class DiagnosisWorkflowController:
    """Coordinates image acquisition -> classification -> detail lookup.

    All state writes happen on the event loop between awaits. Every remote
    call remembers the acquisition generation it was issued for and its
    result is dropped if a newer image has been acquired in the meantime.
    Detail lookups also carry their own sequence number; only the latest one
    may store a record or clear ``fetching_detail``.
    """

    def __init__(
        self,
        image_source: ImageSource,
        client: RemoteClient,
        *,
        notifier: Notifier | None = None,
        healthy_label: str = HEALTHY_LABEL,
        detail_labels: Collection[str] = DETAIL_LABELS,
    ) -> None:
        self._source = image_source
        self._client = client
        self._notifier: Notifier = notifier or ConsoleNotifier()
        self._rule = PredictionChangeRule(healthy_label, detail_labels)
        self._state = WorkflowState()
        self._generation = 0
        self._lookups = 0

    @property
    def state(self) -> WorkflowState:
        return dataclasses.replace(self._state)

    async def acquire_image(self, kind: ImageSourceKind | str) -> ImageRef | None:
        try:
            kind = ImageSourceKind(kind)
        except ValueError:
            self._report(PreconditionError(f"Unknown image source {kind!r}"))
            return None
        operation = (
            self._source.pick_from_library
            if kind is ImageSourceKind.LIBRARY
            else self._source.capture_from_camera
        )
        try:
            image = await _call(operation)
        except Exception as exc:
            self._report(_as_workflow_error(exc, AcquisitionError, "Image acquisition failed"))
            return None
        if image is None:
            logger.info("Image acquisition from %s cancelled", kind.value)
            return None

        self._generation += 1
        self._rule.reset()
        self._state = WorkflowState(image=image)
        logger.info("Acquired image uri=%s mime=%s", image.uri, image.mime_type)
        return image

    async def classify(self) -> str | None:
        image = self._state.image
        if image is None:
            self._report(PreconditionError("No image selected"))
            return None
        if self._state.classifying:
            error = PreconditionError("Classification already in progress")
            error.user_message = "Please wait for the current upload to finish."
            self._report(error)
            return None

        generation = self._generation
        self._state.classifying = True
        prediction: str | None = None
        try:
            payload = await _call(image.read_bytes)
            logger.info("Classifying image uri=%s bytes=%d", image.uri, len(payload))
            prediction = await _call(
                self._client.classify, payload, image.filename, DEFAULT_MIME_TYPE
            )
            if not isinstance(prediction, str) or not prediction:
                raise ClassificationError(f"Malformed prediction {prediction!r}")
        except Exception as exc:
            if self._is_current(generation, image):
                self._report(_as_workflow_error(exc, ClassificationError, "Classification failed"))
            else:
                logger.debug("Dropping stale classification failure for %s: %s", image.uri, exc)
            return None
        finally:
            if self._is_current(generation, image):
                self._state.classifying = False

        if not self._is_current(generation, image):
            logger.debug("Dropping stale prediction %r for %s", prediction, image.uri)
            return None

        label = self._apply_prediction(prediction)
        if label is not None:
            await self.fetch_detail(label)
        return prediction

    async def fetch_detail(self, label: str) -> DetailRecord | None:
        if not label:
            self._report(PreconditionError("Detail lookup requires a label"))
            return None
        if label != self._state.prediction or label not in self._rule.detail_labels:
            self._report(
                PreconditionError(f"No detail available for current prediction {label!r}")
            )
            return None

        generation = self._generation
        self._lookups += 1
        request = self._lookups
        self._state.fetching_detail = True
        logger.info("Fetching detail for %s", label)
        try:
            detail = await _call(self._client.lookup_detail, label)
            if not isinstance(detail, DetailRecord):
                raise DetailLookupError(f"Malformed detail record for {label!r}")
        except Exception as exc:
            if self._detail_is_current(generation, label, request):
                self._report(_as_workflow_error(exc, DetailLookupError, "Detail lookup failed"))
            else:
                logger.debug("Dropping stale detail failure for %s: %s", label, exc)
            return None
        finally:
            if self._detail_is_current(generation, label, request):
                self._state.fetching_detail = False

        if not self._detail_is_current(generation, label, request):
            logger.debug("Dropping stale detail record for %s", label)
            return None
        self._state.detail = detail
        logger.info("Stored detail record %s", detail.name)
        return detail

    def _apply_prediction(self, prediction: str) -> str | None:
        if prediction != self._state.prediction:
            # Any lookup still running belongs to the previous label.
            self._state.detail = None
            self._state.fetching_detail = False
        self._state.prediction = prediction
        self._state.is_healthy = prediction == self._rule.healthy_label
        logger.info("Prediction %s (healthy=%s)", prediction, self._state.is_healthy)
        return self._rule.observe(prediction)

    def _is_current(self, generation: int, image: ImageRef) -> bool:
        return generation == self._generation and self._state.image is image

    def _detail_is_current(self, generation: int, label: str, request: int) -> bool:
        return (
            generation == self._generation
            and request == self._lookups
            and self._state.prediction == label
        )

    def _report(self, error: WorkflowError) -> None:
        logger.warning("%s: %s", type(error).__name__, error)
        self._notifier.notify(Notice.from_error(error))


async def _call(func: Callable[..., Any], *args: Any) -> Any:
    if inspect.iscoroutinefunction(func):
        return await func(*args)
    return await asyncio.to_thread(func, *args)


def _as_workflow_error(
    exc: Exception, error_cls: type[WorkflowError], message: str
) -> WorkflowError:
    if isinstance(exc, error_cls):
        return exc
    error = error_cls(f"{message}: {exc}")
    error.__cause__ = exc
    return error


__all__ = [
    "DiagnosisWorkflowController",
    "PredictionChangeRule",
    "RemoteClient",
    "ImageSourceKind",
    "WorkflowPhase",
    "WorkflowState",
    "HEALTHY_LABEL",
    "DETAIL_LABELS",
]
