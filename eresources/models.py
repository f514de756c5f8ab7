"""
Typed records for the e-resources portal.

Questions and answers are a tagged variant (text or image). In memory and at
the API they are pydantic models; only at the storage boundary are they
encoded as one JSON string per entry, which is how the tables store them.
"""
import json
import logging
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

logger = logging.getLogger(__name__)


# ============ Questions / Answers ============

class TextEntry(BaseModel):
    type: Literal['text'] = 'text'
    content: str


class ImageEntry(BaseModel):
    """An uploaded image; content is the opaque storage reference."""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal['image'] = 'image'
    content: str
    file_name: str = Field(default='', alias='fileName')


Entry = Annotated[Union[TextEntry, ImageEntry], Field(discriminator='type')]

_entry_adapter = TypeAdapter(Entry)


class FileUpload(BaseModel):
    """A binary attached to a request that has not been uploaded yet."""
    filename: str
    data: bytes
    content_type: str = 'application/octet-stream'

    @property
    def size(self):
        return len(self.data)


def encode_entry(entry) -> str:
    return entry.model_dump_json(by_alias=True)


def encode_entries(entries) -> List[str]:
    return [encode_entry(e) for e in entries]


def decode_entry(raw):
    """Decode one stored entry. Plain strings that are not JSON are kept as text."""
    if isinstance(raw, (TextEntry, ImageEntry)):
        return raw
    if isinstance(raw, dict):
        return _entry_adapter.validate_python(raw)
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError):
        logger.debug("Stored entry is not JSON, treating as text")
        return TextEntry(content=str(raw))
    if not isinstance(payload, dict):
        return TextEntry(content=str(raw))
    return _entry_adapter.validate_python(payload)


def decode_entries(raw_list):
    if raw_list is None:
        return []
    if isinstance(raw_list, str):
        # a single JSON-encoded array, or legacy plain text
        try:
            decoded = json.loads(raw_list)
        except ValueError:
            logger.debug("Stored answers are not JSON, treating as text")
            return [TextEntry(content=raw_list)]
        if isinstance(decoded, dict):
            decoded = [decoded]
        elif not isinstance(decoded, list):
            return [TextEntry(content=raw_list)]
        raw_list = decoded
    return [decode_entry(r) for r in raw_list]


def _iso(value):
    return value.isoformat() if isinstance(value, datetime) else value


# ============ Documents ============

class UserProfile(BaseModel):
    id: str
    user_id: str
    full_name: str = ''
    email: str = ''
    role: Literal['student', 'teacher', 'admin'] = 'student'
    cohort: Optional[str] = None
    subjects: List[str] = []
    is_disabled: bool = False

    @field_validator('subjects', mode='before')
    @classmethod
    def _none_to_list(cls, v):
        return v or []

    @field_validator('full_name', 'email', mode='before')
    @classmethod
    def _none_to_empty(cls, v):
        return v or ''

    @property
    def display_name(self):
        return self.full_name or self.email or self.user_id

    @property
    def is_complete(self):
        """Students need a year group and at least one subject."""
        if self.role != 'student':
            return True
        return bool(self.cohort and self.cohort.strip()) and len(self.subjects) > 0


class Assignment(BaseModel):
    id: str
    teacher_id: str
    cohort: str
    subject: str
    term: str
    sub_term: str
    title: str
    questions: List[Entry] = []
    created_at: Optional[datetime] = None

    @field_validator('questions', mode='before')
    @classmethod
    def _decode_questions(cls, v):
        return [e.model_dump(by_alias=True) for e in decode_entries(v)]

    def to_row(self):
        return {
            "teacher_id": self.teacher_id,
            "cohort": self.cohort,
            "subject": self.subject,
            "term": self.term,
            "sub_term": self.sub_term,
            "title": self.title,
            "questions": encode_entries(self.questions),
            "created_at": _iso(self.created_at),
        }


class Submission(BaseModel):
    id: str
    assignment_id: str
    student_id: str
    cohort: str = ''
    subject: str = ''
    teacher_id: str
    answers: List[Entry] = []
    submitted_at: Optional[datetime] = None
    grade: Optional[int] = None
    graded_at: Optional[datetime] = None
    graded_by: Optional[str] = None

    @field_validator('answers', mode='before')
    @classmethod
    def _decode_answers(cls, v):
        return [e.model_dump(by_alias=True) for e in decode_entries(v)]

    @field_validator('cohort', 'subject', mode='before')
    @classmethod
    def _none_to_empty(cls, v):
        return v or ''

    @property
    def is_graded(self):
        return self.grade is not None

    @property
    def status(self):
        return 'GRADED' if self.is_graded else 'SUBMITTED'


class SubmissionView(Submission):
    """A submission enriched with the student's display name."""
    student_name: str = ''


class Book(BaseModel):
    id: str
    file_id: str
    file_name: str = ''
    subject: str
    topic: str = ''
    cohort: str
    term: str = ''
    sub_term: str = ''
    cover_color: str = ''
    uploader_id: str
    created_at: Optional[datetime] = None
    file_url: Optional[str] = None
    uploader_name: Optional[str] = None


class LessonPlan(BaseModel):
    id: str
    file_id: str
    file_name: str = ''
    teacher_id: str
    subject: Optional[str] = None
    cohort: Optional[str] = None
    term: Optional[str] = None
    sub_term: Optional[str] = None
    created_at: Optional[datetime] = None
