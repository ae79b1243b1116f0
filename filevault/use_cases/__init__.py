"""Application use cases for filevault upload workflows."""

from .duplicates import (
    ResolveDuplicateUseCase,
    find_conflict,
    next_available_name,
    split_name,
)
from .upload_checks import ValidateUploadUseCase, classify_upload_error

__all__ = [
    "ResolveDuplicateUseCase",
    "find_conflict",
    "next_available_name",
    "split_name",
    "ValidateUploadUseCase",
    "classify_upload_error",
]
