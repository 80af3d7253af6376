import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Set, Tuple

logger = logging.getLogger(__name__)


class Day(str, Enum):
    """Teaching days of the weekly grid, in iteration order."""

    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"

    @classmethod
    def parse(cls, value: str) -> "Day":
        name = value.strip().capitalize()
        for day in cls:
            if day.value == name:
                return day
        raise ValueError(f"Unknown teaching day: {value!r}")


WEEKDAYS: Tuple[Day, ...] = tuple(Day)

AGGREGATE_THRESHOLD = 4
TEACHER_THRESHOLD = 3
AGGREGATE_ROOM_BASE = 100
TEACHER_ROOM_BASE = 200
PERIODS_PER_DAY = 6


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ScheduleConfig:
    """Knobs controlling the density and labelling of generated timetables."""

    days: Tuple[Day, ...] = WEEKDAYS
    periods_per_day: int = PERIODS_PER_DAY
    aggregate_threshold: int = AGGREGATE_THRESHOLD
    teacher_threshold: int = TEACHER_THRESHOLD
    aggregate_room_base: int = AGGREGATE_ROOM_BASE
    teacher_room_base: int = TEACHER_ROOM_BASE
    wrap_assignments: bool = False

    def __post_init__(self):
        if not self.days:
            raise ValueError("At least one teaching day is required")
        # Normalise plain strings passed by callers into Day members
        object.__setattr__(self, "days", tuple(d if isinstance(d, Day) else Day.parse(d) for d in self.days))
        if self.periods_per_day < 1:
            raise ValueError("periods_per_day must be positive")
        for name in ("aggregate_threshold", "teacher_threshold"):
            value = getattr(self, name)
            if not 0 <= value <= 10:
                raise ValueError(f"{name} must be between 0 and 10, got {value}")

    @property
    def periods(self) -> range:
        return range(1, self.periods_per_day + 1)

    @classmethod
    def from_env(cls, environ=None) -> "ScheduleConfig":
        """Build a config from SCHEDULE_* environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        overrides = {}
        if env.get("SCHEDULE_DAYS"):
            overrides["days"] = tuple(Day.parse(d) for d in env["SCHEDULE_DAYS"].split(",") if d.strip())
        int_fields = {
            "SCHEDULE_PERIODS_PER_DAY": "periods_per_day",
            "SCHEDULE_AGGREGATE_THRESHOLD": "aggregate_threshold",
            "SCHEDULE_TEACHER_THRESHOLD": "teacher_threshold",
            "SCHEDULE_AGGREGATE_ROOM_BASE": "aggregate_room_base",
            "SCHEDULE_TEACHER_ROOM_BASE": "teacher_room_base",
        }
        for env_key, attr in int_fields.items():
            if env.get(env_key):
                overrides[attr] = int(env[env_key])
        if env.get("SCHEDULE_WRAP_ASSIGNMENTS"):
            overrides["wrap_assignments"] = _env_bool(env["SCHEDULE_WRAP_ASSIGNMENTS"])
        return cls(**overrides)


@dataclass(frozen=True)
class Assignment:
    """One course/section/teacher binding fed into the generator."""

    id: str
    course_code: str
    course_name: str
    teacher_id: Optional[str] = None


@dataclass(frozen=True)
class ScheduleEntry:
    """One occupied cell of a generated weekly timetable."""

    day: Day
    period: int
    course_code: str
    course_name: str
    location: str
    class_label: str
    source_assignment_id: str
    teacher_name: Optional[str] = None

    @property
    def slot(self) -> Tuple[Day, int]:
        return (self.day, self.period)

    def to_dict(self) -> Dict[str, object]:
        return {
            "day": self.day.value,
            "period": self.period,
            "courseCode": self.course_code,
            "courseName": self.course_name,
            "teacherName": self.teacher_name,
            "class": self.class_label,
            "location": self.location,
            "classId": self.source_assignment_id,
        }


@dataclass(frozen=True)
class ScheduleView:
    """A complete generated timetable, either for the whole class or for one teacher."""

    entries: Tuple[ScheduleEntry, ...]
    teacher_id: Optional[str] = None
    teacher_name: Optional[str] = None

    @property
    def is_aggregate(self) -> bool:
        return self.teacher_id is None

    def to_dict(self) -> Dict[str, object]:
        schedule = [e.to_dict() for e in self.entries]
        if self.is_aggregate:
            return {"schedule": schedule}
        return {"teacher": {"id": self.teacher_id, "name": self.teacher_name}, "schedule": schedule}


@dataclass(frozen=True)
class FullSchedule:
    student_schedule: ScheduleView = field(default_factory=lambda: ScheduleView(entries=()))
    teacher_schedules: Tuple[ScheduleView, ...] = ()

    def to_dict(self) -> Dict[str, object]:
        return {
            "studentSchedule": [e.to_dict() for e in self.student_schedule.entries],
            "teacherSchedules": [v.to_dict() for v in self.teacher_schedules],
        }


# --------------------------------------------------------------------- #
# Pure helpers
# --------------------------------------------------------------------- #
def stable_hash(value: str) -> int:
    """
    Map a string to a non-negative integer using the ``h = h * 31 + c``
    recurrence over UTF-16 code units, wrapped to a signed 32-bit integer
    after every unit. Characters outside the BMP contribute their two
    surrogates, matching JavaScript's ``charCodeAt`` walk.

    The result is the absolute value of the final accumulator, so it is
    identical across runs and processes (unlike the builtin ``hash``).
    """
    h = 0
    data = value.encode('utf-16-le', 'surrogatepass')
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
        if h & 0x80000000:
            h -= 0x100000000
    return abs(h)


def is_scheduled(seed_hash: int, threshold_out_of_10: int) -> bool:
    return seed_hash % 10 < threshold_out_of_10


def slot_seed(assignment_id: str, day: Day, period: int) -> int:
    return stable_hash(f"{assignment_id}-{day.value}-{period}")


def assign_room(course_id: str, period: int, base_offset: int) -> str:
    """
    Cosmetic room label for a course in a given period.

    Labels are not booked anywhere: the class view and a teacher view are
    seeded independently and may show the same room for different classes.
    """
    return f"Room {base_offset + (stable_hash(course_id) % 10) * 10 + period}"


# --------------------------------------------------------------------- #
# Builder
# --------------------------------------------------------------------- #
class ScheduleBuilder:
    """
    Fills one weekly grid from an ordered list of assignments.

    Slots are visited day by day, period by period. The assignment under the
    pointer is placed when the hash of ``"{id}-{day}-{period}"`` passes the
    threshold, after which the pointer moves to the next assignment; otherwise
    the same assignment is retried in the next slot. With ``avoid_repeats`` a
    slot directly after an entry of the same course code is left empty.
    """

    def __init__(self, config: ScheduleConfig | None = None):
        self.config = config or ScheduleConfig()

    def build(
        self,
        assignments: Sequence[Assignment],
        threshold: int,
        room_base: int,
        avoid_repeats: bool = False,
        class_label: str = "",
        teacher_names: Dict[str, str] | None = None,
        default_teacher_name: Optional[str] = None,
    ) -> List[ScheduleEntry]:
        if not assignments:
            return []

        teacher_names = teacher_names or {}
        entries: List[ScheduleEntry] = []
        occupied: Set[Tuple[Day, int]] = set()
        placed: Dict[Tuple[Day, int], ScheduleEntry] = {}
        pointer = 0
        total = len(assignments)

        for day in self.config.days:
            for period in self.config.periods:
                if pointer >= total:
                    break
                if (day, period) in occupied:
                    continue

                candidate = assignments[pointer]
                if not is_scheduled(slot_seed(candidate.id, day, period), threshold):
                    continue

                if avoid_repeats:
                    previous = placed.get((day, period - 1))
                    if previous is not None and previous.course_code == candidate.course_code:
                        continue

                teacher_name = default_teacher_name
                if candidate.teacher_id:
                    teacher_name = teacher_names.get(candidate.teacher_id, default_teacher_name)

                entry = ScheduleEntry(
                    day=day,
                    period=period,
                    course_code=candidate.course_code,
                    course_name=candidate.course_name,
                    location=assign_room(candidate.id, period, room_base),
                    class_label=class_label,
                    source_assignment_id=candidate.id,
                    teacher_name=teacher_name,
                )
                entries.append(entry)
                occupied.add((day, period))
                placed[(day, period)] = entry

                pointer += 1
                if self.config.wrap_assignments:
                    pointer %= total

        return entries


# --------------------------------------------------------------------- #
# Orchestration
# --------------------------------------------------------------------- #
def distinct_teacher_ids(assignments: Sequence[Assignment]) -> List[str]:
    """Non-empty teacher ids in first-seen order."""
    seen: List[str] = []
    for assignment in assignments:
        if assignment.teacher_id and assignment.teacher_id not in seen:
            seen.append(assignment.teacher_id)
    return seen


def generate_schedules(
    assignments: Sequence[Assignment],
    teacher_names: Dict[str, str],
    class_label: str = "",
    config: ScheduleConfig | None = None,
) -> FullSchedule:
    """
    Build the class-wide timetable plus one timetable per teacher.

    Teachers missing from ``teacher_names`` get no view of their own; their
    classes still appear in the class-wide timetable with teacher "N/A".
    """
    builder = ScheduleBuilder(config)
    cfg = builder.config

    student_entries = builder.build(
        assignments,
        threshold=cfg.aggregate_threshold,
        room_base=cfg.aggregate_room_base,
        avoid_repeats=True,
        class_label=class_label,
        teacher_names=teacher_names,
        default_teacher_name="N/A",
    )

    teacher_views: List[ScheduleView] = []
    for teacher_id in distinct_teacher_ids(assignments):
        name = teacher_names.get(teacher_id)
        if name is None:
            logger.debug("[Schedule] Skipping unknown teacher %s", teacher_id)
            continue
        own = [a for a in assignments if a.teacher_id == teacher_id]
        entries = builder.build(
            own,
            threshold=cfg.teacher_threshold,
            room_base=cfg.teacher_room_base,
            class_label=class_label,
            teacher_names=teacher_names,
        )
        teacher_views.append(ScheduleView(entries=tuple(entries), teacher_id=teacher_id, teacher_name=name))

    logger.debug(
        "[Schedule] %s: %d class entries, %d teacher views",
        class_label or "<unlabelled>", len(student_entries), len(teacher_views),
    )
    return FullSchedule(
        student_schedule=ScheduleView(entries=tuple(student_entries)),
        teacher_schedules=tuple(teacher_views),
    )
