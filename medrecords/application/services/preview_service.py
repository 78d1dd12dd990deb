from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Iterable, List

from medrecords.domain.records.models import LocalFile


@dataclass(frozen=True)
class PreviewHandle:
    filename: str
    content_type: str
    size_bytes: int
    url: str


class PreviewService:
    """Builds ephemeral, local-only view handles for selected files."""

    def build_handles(self, selected_files: Iterable[LocalFile]) -> List[PreviewHandle]:
        return [self._handle(file) for file in selected_files]

    @staticmethod
    def _handle(file: LocalFile) -> PreviewHandle:
        encoded = base64.b64encode(file.data).decode("ascii")
        return PreviewHandle(
            filename=file.filename,
            content_type=file.content_type,
            size_bytes=file.size,
            url=f"data:{file.content_type};base64,{encoded}",
        )
