"""
Streaming readers for assignment uploads (CSV or Excel).
Rows are yielded in chunks with lower-cased, stripped column names.
"""
import csv
import io
from typing import Any, Dict, Iterable, Iterator, List

from openpyxl import load_workbook

from scheduler import Assignment

PREVIEW_COLUMNS = {'id', 'course_code', 'course_name'}
IMPORT_COLUMNS = {'course_code', 'course_name', 'program', 'branch', 'semester', 'section'}


def process_csv_stream(file_stream, chunk_size: int = 1000) -> Iterator[List[Dict[str, Any]]]:
    """
    Stream a CSV upload in chunks of at most ``chunk_size`` rows.

    Args:
        file_stream: Binary file-like object (``request.files['file'].stream``)
        chunk_size: Number of rows per chunk
    """
    text_stream = io.TextIOWrapper(file_stream, encoding='utf-8-sig', newline='')
    reader = csv.DictReader(text_stream)

    chunk = []
    for row in reader:
        chunk.append({k.strip().lower(): (v or '').strip() for k, v in row.items() if k})
        if len(chunk) == chunk_size:
            yield chunk
            chunk = []

    if chunk:
        yield chunk


def process_excel_stream(file_stream, chunk_size: int = 1000) -> Iterator[List[Dict[str, Any]]]:
    """Stream the active sheet of an .xlsx upload; the first row holds the headers."""
    workbook = load_workbook(file_stream, read_only=True, data_only=True)
    try:
        rows_iter = workbook.active.iter_rows(values_only=True)
        headers = next(rows_iter, None)
        if headers is None:
            return
        headers = [str(h).strip().lower() if h else f'column_{i}' for i, h in enumerate(headers)]

        chunk = []
        for row_values in rows_iter:
            chunk.append({
                header: '' if value is None else str(value).strip()
                for header, value in zip(headers, row_values)
            })
            if len(chunk) == chunk_size:
                yield chunk
                chunk = []

        if chunk:
            yield chunk
    finally:
        workbook.close()


def process_upload_stream(upload_file, chunk_size: int = 1000) -> Iterator[List[Dict[str, Any]]]:
    """
    Pick the reader from the upload's file extension.

    Raises:
        ValueError: If the file is neither CSV nor Excel
    """
    filename = (upload_file.filename or '').lower()

    if filename.endswith('.csv'):
        yield from process_csv_stream(upload_file.stream, chunk_size)
    elif filename.endswith('.xlsx') or filename.endswith('.xls'):
        yield from process_excel_stream(upload_file.stream, chunk_size)
    else:
        raise ValueError('Unsupported file type. Upload CSV or Excel (.xlsx, .xls) files only.')


def get_missing_columns(available_columns: set, required_columns: set) -> set:
    return required_columns - available_columns


def iter_rows(chunks: Iterable[List[Dict[str, Any]]], required_columns: set) -> Iterator[Dict[str, Any]]:
    """Flatten chunks, checking the header of the first chunk against ``required_columns``."""
    checked = False
    for chunk in chunks:
        if not checked and chunk:
            missing = get_missing_columns(set(chunk[0].keys()), required_columns)
            if missing:
                raise ValueError(f"Missing required columns: {', '.join(sorted(missing))}")
            checked = True
        yield from chunk


def rows_to_assignments(rows: Iterable[Dict[str, Any]]):
    """
    Convert preview rows into generator input.

    Returns ``(assignments, teacher_names)``; ``teacher_names`` only holds
    teachers whose row carried a non-empty ``teacher_name``. Rows without an
    ``id`` are skipped.
    """
    assignments: List[Assignment] = []
    teacher_names: Dict[str, str] = {}
    for row in rows:
        ident = row.get('id', '')
        if not ident:
            continue
        teacher_id = row.get('teacher_id') or None
        assignments.append(Assignment(
            id=ident,
            course_code=row.get('course_code', ''),
            course_name=row.get('course_name', ''),
            teacher_id=teacher_id,
        ))
        if teacher_id and row.get('teacher_name'):
            teacher_names.setdefault(teacher_id, row['teacher_name'])
    return assignments, teacher_names
