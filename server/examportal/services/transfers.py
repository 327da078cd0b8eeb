"""
CSV transfers: filtered data export and bulk student/sales registration.
"""
import io
import logging
import os
import re
from typing import List, Optional

import pandas as pd

from examportal.schemas import ProcessedStudent, RegistrationReport
from examportal.services.backend_client import BackendClient, BackendError

logger = logging.getLogger(__name__)

DEFAULT_EXPORT_NAME = "export.csv"
USER_TYPES = ["student", "sales", "school", "admin"]

_FILENAME_RE = re.compile(r'filename\*?=(?:UTF-8\'\')?"?([^";]+)"?', re.IGNORECASE)


class RosterError(Exception):
    """The roster file cannot be sent as it is."""


def filename_from_disposition(header: Optional[str], default: str = DEFAULT_EXPORT_NAME) -> str:
    if not header:
        return default
    match = _FILENAME_RE.search(header)
    if not match:
        return default
    # Never let a header pick a directory
    name = os.path.basename(match.group(1).strip())
    return name or default


async def download_export(client: BackendClient, dest_dir: str, usertype: str = "",
                          schoolname: str = "") -> str:
    """Generate the filtered CSV on the backend and save it; returns the path."""
    response = await client.generate_csv(usertype=usertype, schoolname=schoolname)
    filename = filename_from_disposition(response.headers.get("Content-Disposition"))
    os.makedirs(dest_dir, exist_ok=True)
    path = os.path.join(dest_dir, filename)
    with open(path, "wb") as f:
        f.write(response.content)
    logger.info(f"✅ Saved export: {path}")
    return path


def read_roster(filename: str, content: bytes) -> pd.DataFrame:
    """Load a roster spreadsheet (CSV or XLSX)."""
    try:
        if filename.lower().endswith(".xlsx"):
            return pd.read_excel(io.BytesIO(content))
        return pd.read_csv(io.BytesIO(content))
    except (ValueError, pd.errors.ParserError) as e:
        raise RosterError(f"Could not read {filename}: {e}") from e


def check_roster(filename: str, content: bytes) -> int:
    """Pre-flight a student roster; returns the number of data rows.

    The file needs a name column and an email column (matched loosely, as
    registrars label them differently) and at least one row.
    """
    if not content:
        raise RosterError("Please select a file.")
    df = read_roster(filename, content)

    name_col = None
    email_col = None
    for col in df.columns:
        c = str(col).lower()
        if "email" in c and email_col is None:
            email_col = col
        elif "name" in c and name_col is None:
            name_col = col

    if email_col is None or name_col is None:
        raise RosterError("Roster must contain name & email columns")
    rows = len(df.dropna(how="all"))
    if rows == 0:
        raise RosterError("Roster has no students")
    return rows


def summarize_registration(data: dict) -> RegistrationReport:
    """Turn the backend's per-row results into the report the modal shows."""
    processed = [ProcessedStudent.model_validate(item) for item in data.get("processedStudents") or []]

    successes: List[str] = []
    duplicates: List[str] = []
    errors: List[str] = []
    for student in processed:
        if student.status == "success":
            info = student.data or {}
            successes.append(f"Row {student.row}: Registered {info.get('name')} ({info.get('email')})")
        elif student.status == "skipped":
            duplicates.append(f"Row {student.row}: Skipped - {student.reason} (ID: {student.existing_id})")
        elif student.status == "failed":
            errors.append(f"Row {student.row}: Failed - {student.error}")

    success_count = data.get("successCount", len(successes))
    return RegistrationReport(
        message=f"Registered {success_count}/{data.get('total', len(processed))} students",
        success_count=success_count,
        duplicate_count=data.get("duplicateCount", len(duplicates)),
        error_count=data.get("errorCount", len(errors)),
        successes=successes,
        duplicates=duplicates,
        errors=errors,
        download_url=data.get("downloadUrl"),
        raw=data,
    )


async def register_students(client: BackendClient, filename: str, content: bytes,
                            exam_id: str) -> RegistrationReport:
    """Upload a roster for one exam and summarize the outcome per row."""
    check_roster(filename, content)
    response = await client.register_students(filename, content, exam_id)

    content_type = response.headers.get("content-type", "")
    if "application/json" not in content_type:
        text = response.text
        message = "Server returned an error page" if "<!DOCTYPE" in text else text
        raise BackendError(response.status_code if response.is_error else 502, message or "Upload failed")

    data = response.json()
    if response.is_error:
        raise BackendError(response.status_code, data.get("error") or "Upload failed")

    report = summarize_registration(data)
    logger.info(f"📋 {report.message}")
    return report


async def register_sales(client: BackendClient, filename: str, content: bytes) -> dict:
    if not content:
        raise RosterError("Please select a file.")
    result = await client.register_sales(filename, content)
    logger.info("✅ File uploaded and sales members stored")
    return result
