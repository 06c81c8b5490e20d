from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List

from device.errors import DetailLookupError

from .schemas import DetailRecord

GLAUCOMA_DETAIL = DetailRecord(
    name="Glaucoma",
    description=(
        "A group of eye conditions that damage the optic nerve, often caused by "
        "abnormally high pressure in the eye."
    ),
    image_url=None,
    symptoms=["Patchy blind spots in side vision", "Tunnel vision in advanced stages"],
    treatments=["Prescription eye drops", "Laser therapy", "Surgery"],
    prevention_tips=["Get regular dilated eye exams", "Wear eye protection"],
    created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
)


@dataclass
class MockDiagnosisApi:
    """In-process stand-in for both remote services."""

    default_prediction: str = "normal"
    details: Dict[str, DetailRecord] = field(
        default_factory=lambda: {"glaucoma": GLAUCOMA_DETAIL}
    )
    uploads: List[dict[str, object]] = field(default_factory=list)
    lookups: List[str] = field(default_factory=list)

    def classify(self, image_bytes: bytes, filename: str, mime_type: str) -> str:
        self.uploads.append(
            {"filename": filename, "mime_type": mime_type, "size": len(image_bytes)}
        )
        return self.default_prediction

    def lookup_detail(self, label: str) -> DetailRecord:
        self.lookups.append(label)
        try:
            return self.details[label]
        except KeyError as exc:
            raise DetailLookupError(f"No disease entry for {label!r}") from exc


__all__ = ["MockDiagnosisApi", "GLAUCOMA_DETAIL"]
