from typing import Dict, List, Optional

from pydantic import ValidationError


class CourseValidationError(Exception):
    """Input rejected at the service boundary.

    ``errors`` is a list of ``{"field": ..., "message": ...}`` dicts.
    """

    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    @classmethod
    def from_pydantic(cls, exc: ValidationError, message: str = "Course validation failed") -> "CourseValidationError":
        return cls(message, field_errors_from_pydantic(exc))


class DuplicateCourseError(Exception):
    def __init__(self, course_id: str):
        super().__init__(f"Course with course_id '{course_id}' already exists")
        self.course_id = course_id


class CsvImportError(Exception):
    """The uploaded file could not be read as course CSV."""


def field_errors_from_pydantic(exc: ValidationError) -> List[Dict[str, str]]:
    return [
        {
            "field": ".".join(str(part) for part in error["loc"]) or "__root__",
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
