"""Duplicate-name detection and resolution for uploads."""
from __future__ import annotations

import inspect
import logging
from typing import Iterable, Optional, Set

from ..errors import DuplicateFileError, ValidationError
from ..models import DuplicateAction, DuplicateDecision, FileReference, UploadSource
from ..protocols import DuplicateResolver, IFileRepository

logger = logging.getLogger(__name__)

DEFAULT_MAX_RENAME_ATTEMPTS = 100


def split_name(name: str) -> tuple[str, str]:
    """
    Split ``name`` into (stem, extension), extension including its dot.

    A leading dot (".env") is part of the stem, not an extension.
    """
    dot = name.rfind(".")
    if dot <= 0:
        return name, ""
    return name[:dot], name[dot:]


def find_conflict(files: Iterable[FileReference], name: str) -> Optional[FileReference]:
    """First listed file whose display name equals ``name``, ignoring case."""
    wanted = name.casefold()
    for file_ref in files:
        if file_ref.display_name.casefold() == wanted:
            return file_ref
    return None


def next_available_name(
    name: str,
    taken: Set[str],
    max_attempts: int = DEFAULT_MAX_RENAME_ATTEMPTS,
) -> str:
    """
    ``stem-N.ext`` for the smallest N >= 1 not in ``taken`` (case-insensitive).

    Raises ValidationError after ``max_attempts`` candidates.
    """
    taken_folded = {t.casefold() for t in taken}
    stem, ext = split_name(name)
    for n in range(1, max_attempts + 1):
        candidate = f"{stem}-{n}{ext}"
        if candidate.casefold() not in taken_folded:
            return candidate
    raise ValidationError(f"Could not find a free name for {name} after {max_attempts} attempts")


async def _ask(resolver: DuplicateResolver, decision: DuplicateDecision) -> DuplicateAction:
    action = resolver(decision)
    if inspect.isawaitable(action):
        action = await action
    return DuplicateAction(action)


class ResolveDuplicateUseCase:
    """
    Decide what name to upload under when the name is already taken.

    Reads the file listing once; files past ``scan_size`` are not checked.
    Returns the source to upload (possibly renamed) or None when the user
    cancelled. REPLACE deletes the existing file before returning.
    """

    def __init__(
        self,
        repository: IFileRepository,
        scan_size: int = 1000,
        max_rename_attempts: int = DEFAULT_MAX_RENAME_ATTEMPTS,
    ):
        self._repository = repository
        self._scan_size = scan_size
        self._max_rename_attempts = max_rename_attempts

    async def execute(
        self,
        source: UploadSource,
        resolver: Optional[DuplicateResolver] = None,
    ) -> Optional[UploadSource]:
        files = await self._repository.snapshot(self._scan_size)
        existing = find_conflict(files, source.name)
        if existing is None:
            return source

        decision = DuplicateDecision(
            conflicting_file_name=existing.display_name,
            existing_file_id=existing.id,
        )
        if resolver is None:
            raise DuplicateFileError(decision)

        action = await _ask(resolver, decision)
        decision = decision.choose(action)
        logger.info("Duplicate %s (file %s): %s", source.name, existing.id, action.value)

        if action is DuplicateAction.CANCEL:
            return None
        if action is DuplicateAction.REPLACE:
            await self._repository.delete_file(existing.id)
            return source

        new_name = next_available_name(
            source.name,
            {f.display_name for f in files},
            self._max_rename_attempts,
        )
        return source.renamed(new_name)
