"""
Timetable operations backed by MongoDB: filter discovery, class schedules
and bulk import of class assignments.
"""
import logging
from typing import Any, Dict, List, Mapping

from csv_processor import IMPORT_COLUMNS, iter_rows, process_upload_stream
from models import ClassAssignment, Student, User, db
from scheduler import Assignment, FullSchedule, ScheduleConfig, generate_schedules

logger = logging.getLogger(__name__)

SCHEDULE_FILTER_KEYS = ('program', 'branch', 'semester', 'section')
_FILTER_PROJECTION = {'program': 1, 'branch': 1, 'year': 1, 'semester': 1, 'section': 1}


def _numeric_key(value: str):
    try:
        return (0, int(value))
    except ValueError:
        return (1, value)


def get_timetable_filters() -> Dict[str, Any]:
    """Distinct programs, branches, years, semesters and sections seen in students and classes."""
    programs = set()
    branches: Dict[str, set] = {}
    sections: Dict[str, set] = {}
    years = set()
    semesters = set()

    records = Student.query.options(_FILTER_PROJECTION).all() + ClassAssignment.query.options(_FILTER_PROJECTION).all()
    for record in records:
        program = getattr(record, 'program', None)
        if program:
            programs.add(program)
            # Every program gets an entry, even without branches or sections
            program_branches = branches.setdefault(program, set())
            program_sections = sections.setdefault(program, set())
            if getattr(record, 'branch', None):
                program_branches.add(record.branch)
            if getattr(record, 'section', None):
                program_sections.add(record.section)
        year = getattr(record, 'year', None)
        if year:
            years.add(str(year))
        semester = getattr(record, 'semester', None)
        if semester:
            semesters.add(str(semester))

    return {
        'programs': sorted(programs),
        'branches': {p: sorted(v) for p, v in branches.items()},
        'years': sorted(years, key=_numeric_key),
        'semesters': sorted(semesters, key=_numeric_key),
        'sections': {p: sorted(v) for p, v in sections.items()},
    }


def parse_schedule_request(params: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate the section filters; semester is stored as an integer."""
    missing = [k for k in SCHEDULE_FILTER_KEYS if not str(params.get(k) or '').strip()]
    if missing:
        raise ValueError(f"Missing required filters: {', '.join(missing)}")
    filters = {k: str(params[k]).strip() for k in SCHEDULE_FILTER_KEYS}
    try:
        filters['semester'] = int(filters['semester'])
    except ValueError:
        raise ValueError(f"Semester must be a number, got {filters['semester']!r}") from None
    return filters


def load_assignments(filters: Mapping[str, Any]) -> List[Assignment]:
    classes = ClassAssignment.query.filter_by(**filters).order_by('id').all()
    return [
        Assignment(
            id=c.assignment_id,
            course_code=c.course_code or '',
            course_name=c.course_name or '',
            teacher_id=c.teacher_id or None,
        )
        for c in classes
    ]


def load_teacher_names(teacher_ids: List[str]) -> Dict[str, str]:
    """Teacher directory lookup; ids without a user record are simply absent."""
    if not teacher_ids:
        return {}
    names = {}
    for user in User.query.filter_in('uid', teacher_ids).all():
        uid = getattr(user, 'uid', None)
        if uid:
            # A teacher without a name on record is shown by uid
            names[uid] = user.display_name
    return names


def get_schedule_for_class(params: Mapping[str, Any], config: ScheduleConfig | None = None) -> FullSchedule:
    filters = parse_schedule_request(params)
    assignments = load_assignments(filters)
    if not assignments:
        logger.info("[Schedule] No classes for %s", filters)
        return FullSchedule()

    teacher_ids = sorted({a.teacher_id for a in assignments if a.teacher_id})
    teacher_names = load_teacher_names(teacher_ids)
    class_label = f"{filters['program']} {filters['branch']} {filters['section']}"
    return generate_schedules(assignments, teacher_names, class_label=class_label, config=config)


def import_class_assignments(upload, chunk_size: int = 1000) -> Dict[str, int]:
    """
    Upsert class assignments from a CSV/Excel upload.

    A row matches an existing assignment on course code plus section filters.
    """
    rows = iter_rows(process_upload_stream(upload, chunk_size=chunk_size), IMPORT_COLUMNS)

    existing = {}
    for c in ClassAssignment.query.all():
        existing[(c.course_code, c.program, c.branch, c.semester, c.section)] = c

    created, updated, skipped = 0, 0, 0
    try:
        for row in rows:
            try:
                semester = int(row['semester'])
            except ValueError:
                skipped += 1
                continue
            if not row['course_code']:
                skipped += 1
                continue

            key = (row['course_code'], row['program'], row['branch'], semester, row['section'])
            record = existing.get(key)
            if record is None:
                record = ClassAssignment(
                    course_code=row['course_code'],
                    program=row['program'],
                    branch=row['branch'],
                    semester=semester,
                    section=row['section'],
                )
                existing[key] = record
                created += 1
            else:
                updated += 1
            record.course_name = row['course_name']
            # Uploads without a teacher_id column keep existing owners
            if 'teacher_id' in row:
                record.teacher_id = row['teacher_id'] or None
            db.session.add(record)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("[Import] Class assignments: %d created, %d updated, %d skipped", created, updated, skipped)
    return {'created': created, 'updated': updated, 'skipped': skipped}
