"""Keyed persistence for students and consultations.

Creates are "insert, catch duplicate": the pre-check done by the reconciler
is only an optimisation, the UNIQUE constraints decide. A duplicate insert
rolls back the current unit of work and reports the row that won the race.
"""
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from consult_sync.core.errors import PersistenceError
from consult_sync.models import Consultation, Student

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Created:
    record: Any


@dataclass(frozen=True)
class AlreadyExists:
    record: Any


class ConsultationStore:
    def __init__(self, session: Session):
        self.session = session

    def find_by_external_id(self, external_event_id: str) -> Consultation | None:
        try:
            statement = select(Consultation).where(
                Consultation.external_event_id == external_event_id
            )
            return self.session.exec(statement).first()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Lookup of consultation {external_event_id} failed") from e

    def create(self, data: dict[str, Any]) -> Created | AlreadyExists:
        """Insert a consultation; a duplicate external id yields AlreadyExists."""
        consultation = Consultation(**data)
        try:
            self.session.add(consultation)
            self.session.flush()
        except IntegrityError as e:
            self.session.rollback()
            existing = self.find_by_external_id(data.get("external_event_id"))
            if existing is None:
                raise PersistenceError("Consultation insert violated a constraint") from e
            logger.info(
                f"Concurrent create for external event {existing.external_event_id}, "
                f"keeping consultation {existing.id}"
            )
            return AlreadyExists(existing)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError("Consultation insert failed") from e
        return Created(consultation)

    def update(self, consultation_id: UUID, patch: dict[str, Any]) -> Consultation:
        try:
            consultation = self.session.get(Consultation, consultation_id)
            if consultation is None:
                raise PersistenceError(f"Consultation {consultation_id} not found")
            for field, value in patch.items():
                setattr(consultation, field, value)
            consultation.updated_at = datetime.now(UTC)
            self.session.add(consultation)
            self.session.flush()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"Update of consultation {consultation_id} failed") from e
        return consultation


class StudentStore:
    def __init__(self, session: Session):
        self.session = session

    def find_by_email(self, email: str) -> Student | None:
        try:
            statement = select(Student).where(func.lower(Student.email) == email.lower())
            return self.session.exec(statement).first()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Lookup of student {email} failed") from e

    def create(self, data: dict[str, Any]) -> Student:
        """Insert a student; if the email was taken meanwhile, return that student."""
        student = Student(**data)
        try:
            self.session.add(student)
            self.session.flush()
        except IntegrityError as e:
            self.session.rollback()
            existing = self.find_by_email(data["email"])
            if existing is None:
                raise PersistenceError("Student insert violated a constraint") from e
            return existing
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError("Student insert failed") from e
        return student
