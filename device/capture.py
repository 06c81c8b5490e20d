from __future__ import annotations

import io
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol
from urllib.parse import unquote, urlparse

from PIL import Image, UnidentifiedImageError

DEFAULT_MIME_TYPE = "image/jpeg"
DEFAULT_FILENAME = "image.jpg"


@dataclass(frozen=True)
class ImageRef:
    """Handle to an image that is available on the local device."""

    uri: str
    mime_type: str = DEFAULT_MIME_TYPE

    @property
    def path(self) -> Path:
        parsed = urlparse(self.uri)
        if parsed.scheme == "file":
            return Path(unquote(parsed.path))
        return Path(self.uri)

    @property
    def filename(self) -> str:
        return self.path.name or DEFAULT_FILENAME

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()

    @classmethod
    def from_path(cls, path: Path, mime_type: str = DEFAULT_MIME_TYPE) -> "ImageRef":
        return cls(uri=path.resolve().as_uri(), mime_type=mime_type)


class ImageSource(Protocol):
    """Device capability that yields an image or ``None`` when the user cancels."""

    def pick_from_library(self) -> ImageRef | None: ...

    def capture_from_camera(self) -> ImageRef | None: ...


@dataclass
class Photo:
    """Encoded still image straight from a camera."""

    data: bytes
    extension: str = "jpg"


class Camera(Protocol):
    def capture(self) -> Photo: ...

    def release(self) -> None: ...


def sniff_mime_type(path: Path) -> str:
    """Return the MIME type Pillow detects for ``path``."""
    try:
        with Image.open(path) as img:
            fmt = img.format
    except FileNotFoundError as exc:
        raise RuntimeError(f"Image not found: {path}") from exc
    except (UnidentifiedImageError, OSError) as exc:
        raise RuntimeError(f"Unreadable image file: {path}") from exc
    return Image.MIME.get(fmt or "", DEFAULT_MIME_TYPE)


def write_placeholder_jpeg(path: Path, color: str = "gray", size: tuple[int, int] = (32, 32)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    buf = io.BytesIO()
    Image.new("RGB", size, color=color).save(buf, format="JPEG")
    path.write_bytes(buf.getvalue())
    return path


class StubImageSource:
    """Image source that hands out a generated placeholder photo.

    ``cancel=True`` makes both operations behave like a user dismissing the
    picker.
    """

    def __init__(self, output_dir: Path, *, cancel: bool = False, color: str = "gray") -> None:
        self._output_dir = output_dir
        self._cancel = cancel
        self._color = color
        self.requests: list[str] = []

    def pick_from_library(self) -> ImageRef | None:
        self.requests.append("library")
        return self._make("library")

    def capture_from_camera(self) -> ImageRef | None:
        self.requests.append("camera")
        return self._make("camera")

    def _make(self, kind: str) -> ImageRef | None:
        if self._cancel:
            return None
        target = self._output_dir / f"{kind}-{len(self.requests)}.jpg"
        return ImageRef.from_path(write_placeholder_jpeg(target, color=self._color))


@dataclass
class DeviceImageSource:
    """Library picks come from a file path, camera shots from a ``Camera``.

    An empty or missing ``library_path`` stands for a dismissed picker.
    """

    library_path: Path | None = None
    camera: Camera | None = None
    capture_dir: Path = field(default_factory=lambda: Path("captures"))

    def pick_from_library(self) -> ImageRef | None:
        if self.library_path is None or not str(self.library_path).strip():
            return None
        return ImageRef.from_path(self.library_path, sniff_mime_type(self.library_path))

    def capture_from_camera(self) -> ImageRef | None:
        if self.camera is None:
            raise RuntimeError("No camera configured for capture")
        photo = self.camera.capture()
        self.capture_dir.mkdir(parents=True, exist_ok=True)
        target = self.capture_dir / f"capture_{int(time.time() * 1000)}.{photo.extension}"
        target.write_bytes(photo.data)
        return ImageRef.from_path(target, sniff_mime_type(target))

    def close(self) -> None:
        if self.camera is not None:
            self.camera.release()


class OpenCVCamera:
    """Camera backed by an OpenCV device index or stream URL.

    The device is opened on the first shot, the way a handset only starts its
    camera once the user asks for a photo, and stays open until ``release``.
    """

    def __init__(
        self,
        source: int | str = 0,
        *,
        extension: str = "jpg",
        warmup_frames: int = 2,
    ) -> None:
        self._source = source
        self._extension = extension.lstrip(".") or "jpg"
        self._warmup_frames = max(0, warmup_frames)
        self._cv2 = None
        self._cap = None

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    def capture(self) -> Photo:
        cap = self._open()
        ok, frame = cap.read()
        if not ok or frame is None:
            raise RuntimeError("Failed to capture photo from camera")
        success, buffer = self._cv2.imencode(f".{self._extension}", frame)
        if not success:
            raise RuntimeError(f"OpenCV failed to encode photo as {self._extension}")
        return Photo(data=buffer.tobytes(), extension=self._extension)

    def release(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    def _open(self):
        if self._cap is not None:
            return self._cap
        try:
            import cv2  # type: ignore
        except ImportError as exc:  # pragma: no cover - depends on optional dep
            raise RuntimeError("opencv-python is required for camera capture") from exc

        cap = cv2.VideoCapture(self._source)
        if not cap.isOpened():
            cap.release()
            raise RuntimeError(f"Unable to open camera source {self._source!r}")
        # Auto exposure needs a few frames to settle.
        for _ in range(self._warmup_frames):
            ok, _ = cap.read()
            if not ok:
                break
        self._cv2, self._cap = cv2, cap
        return cap


__all__ = [
    "ImageRef",
    "ImageSource",
    "Photo",
    "Camera",
    "StubImageSource",
    "DeviceImageSource",
    "OpenCVCamera",
    "sniff_mime_type",
    "write_placeholder_jpeg",
    "DEFAULT_MIME_TYPE",
    "DEFAULT_FILENAME",
]
