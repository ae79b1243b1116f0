"""Orchestrator data models."""
import uuid
from dataclasses import dataclass, field
from typing import Optional

from ..models import FileReference, UploadErrorKind, UploadSource, UploadState
from ..protocols import IUploadHandle


def new_task_id() -> str:
    return uuid.uuid4().hex


@dataclass
class UploadTask:
    """
    One tracked upload.

    Owned by UploadOrchestrator; read it freely, change it only through
    the orchestrator.
    """
    source: UploadSource
    id: str = field(default_factory=new_task_id)
    state: UploadState = UploadState.UPLOADING
    progress: float = 0.0
    error_kind: Optional[UploadErrorKind] = None
    error_message: Optional[str] = None
    result: Optional[FileReference] = None
    last_transition: float = 0.0
    pinned: bool = False
    handle: Optional[IUploadHandle] = field(default=None, repr=False, compare=False)

    @property
    def name(self) -> str:
        return self.source.name

    @property
    def is_active(self) -> bool:
        return self.state is UploadState.UPLOADING

    @property
    def result_file_id(self) -> Optional[int]:
        return self.result.id if self.result else None
