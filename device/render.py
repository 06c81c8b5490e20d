from __future__ import annotations

from typing import List

from cloud.api.schemas import DetailRecord

from .workflow import WorkflowState


def render_state(state: WorkflowState) -> str:
    lines: List[str] = []
    if state.image is not None:
        lines.append(f"Image: {state.image.uri}")
    if state.classifying:
        lines.append("Classifying...")
    if state.prediction:
        lines.extend(["", "Prediction Result", state.prediction])
    if state.is_healthy:
        lines.extend(["", "Healthy ✔"])
    if state.fetching_detail:
        lines.append("Fetching details...")
    if state.detail is not None:
        lines.extend(["", *render_detail(state.detail)])
    return "\n".join(lines)


def render_detail(detail: DetailRecord) -> List[str]:
    lines = [detail.name, detail.description]
    if detail.image_url:
        lines.append(f"Image: {detail.image_url}")
    lines.extend(_section("Symptoms", detail.symptoms))
    lines.extend(_section("Treatments", detail.treatments))
    if detail.prevention_tips:
        lines.extend(_section("Prevention Tips", detail.prevention_tips))
    created = detail.created_at.astimezone().strftime("%Y-%m-%d %H:%M:%S")
    lines.extend(["", f"Created At: {created}"])
    return lines


def _section(title: str, items: List[str]) -> List[str]:
    return ["", f"{title}:", *(f"  - {item}" for item in items)]


__all__ = ["render_state", "render_detail"]
