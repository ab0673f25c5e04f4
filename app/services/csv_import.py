import io
import logging
from typing import Any, Dict, List

import pandas as pd
from pydantic import ValidationError

from app.core.constants import CSV_COLUMNS, CSV_REQUIRED_COLUMNS, SkillLevelEnum
from app.core.exceptions import CsvImportError, field_errors_from_pydantic
from app.schemas.course import CourseCreate, CsvImportResult, CsvRowError

logger = logging.getLogger(__name__)

LINE_NUMBER_COLUMN = "__line__"


def _line_numbers(df: pd.DataFrame) -> pd.Series:
    """Physical line on which each record starts; the header is line 1.

    Blank lines are kept as empty records while numbering, and quoted values
    spanning several lines push every later record down.
    """
    extra_lines = pd.Series(
        [sum(str(value).count("\n") for value in values) for values in df.itertuples(index=False)],
        index=df.index,
        dtype="int64",
    )
    preceding = extra_lines.cumsum().shift(fill_value=0)
    return pd.Series(range(2, len(df) + 2), index=df.index, dtype="int64") + preceding


def read_course_frame(file_content: bytes) -> pd.DataFrame:
    try:
        df = pd.read_csv(io.BytesIO(file_content), dtype=str, keep_default_na=False, skip_blank_lines=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise CsvImportError(f"Failed to parse CSV file: {e}")

    df = df.fillna("")
    df.columns = [str(col).strip().lower() for col in df.columns]
    missing_columns = [col for col in CSV_REQUIRED_COLUMNS if col not in df.columns]
    if missing_columns:
        raise CsvImportError(f"Missing required columns: {', '.join(missing_columns)}")

    line_numbers = _line_numbers(df)
    for col in CSV_COLUMNS:
        if col not in df.columns:
            df[col] = ""
    df = df[CSV_COLUMNS].copy()
    for col in CSV_COLUMNS:
        df[col] = df[col].astype(str).str.strip()
    df[LINE_NUMBER_COLUMN] = line_numbers

    # Blank lines and rows without the identifying columns are not course rows
    has_required = (df[CSV_REQUIRED_COLUMNS] != "").all(axis=1)
    return df[has_required]


def _row_to_record(row: pd.Series) -> Dict[str, Any]:
    record = {col: row[col] for col in CSV_COLUMNS}
    record["rating"] = record["rating"] or 0
    record["skill_level"] = (record["skill_level"] or SkillLevelEnum.BEGINNER.value).lower()
    return record


def _row_errors(exc: ValidationError) -> List[str]:
    messages = []
    for violation in field_errors_from_pydantic(exc):
        field = violation["field"]
        if field == "rating":
            messages.append("rating must be a number between 0 and 5")
        elif field == "skill_level":
            messages.append("skill_level must be beginner, intermediate, or advanced")
        else:
            messages.append(f"{field}: {violation['message']}")
    return messages


def parse_course_csv(file_content: bytes) -> CsvImportResult:
    """Parse an uploaded course CSV into validated records and per-row errors.

    Row numbers are physical line numbers in the file: the header is row 1,
    so the first data row is row 2.
    """
    df = read_course_frame(file_content)
    result = CsvImportResult(total_rows=len(df))

    for _, row in df.iterrows():
        row_number = int(row[LINE_NUMBER_COLUMN])
        record = _row_to_record(row)
        try:
            result.courses.append(CourseCreate.model_validate(record))
            result.rows.append(row_number)
        except ValidationError as e:
            result.errors.append(CsvRowError(
                row=row_number,
                course_id=record["course_id"] or None,
                errors=_row_errors(e),
            ))

    logger.info(f"Parsed course CSV: {result.total_rows} rows, {len(result.courses)} valid, {len(result.errors)} invalid")
    return result
