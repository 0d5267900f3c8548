# backend/campus_store/services/student_service.py
"""
Denormalized student state maintained as a side effect of sales.

Student.items and Student.paid are secondary state: failures while syncing
them are logged and never undo the sale that triggered them. Each sync runs
inside a SAVEPOINT so a failed write cannot poison the outer transaction.
"""
from __future__ import annotations

import re
from typing import Iterable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Student

_WHITESPACE = re.compile(r"\s+")


def product_item_key(name: str) -> str:
    """'Lab Coat (Medium)' -> 'lab_coat_(medium)'"""
    return _WHITESPACE.sub("_", name.strip().lower())


def get_student(student_id: int) -> Student | None:
    return db.session.get(Student, student_id)


def mark_items_received(student: Student, names: Iterable[str]) -> None:
    for name in names:
        student.items[product_item_key(name)] = True


def sync_after_sale(student_id: int, names: Iterable[str], *, is_paid: bool | None) -> bool:
    """
    Best-effort: mark every item name as received and, when the sale is
    paid, flip the student's paid flag on (never off).

    Returns False if the sync failed (already logged).
    """
    names = list(names)
    try:
        with db.session.begin_nested():
            student = db.session.get(Student, student_id)
            if student is None:
                current_app.logger.warning("Student %s vanished before item sync", student_id)
                return False
            mark_items_received(student, names)
            if is_paid and not student.paid:
                student.paid = True
        return True
    except SQLAlchemyError:
        current_app.logger.warning("Failed to sync items for student %s", student_id, exc_info=True)
        return False


def mirror_paid_flag(student_id: int, is_paid: bool) -> bool:
    """Best-effort: copy a transaction's payment flag onto the student."""
    try:
        with db.session.begin_nested():
            student = db.session.get(Student, student_id)
            if student is None:
                return False
            student.paid = bool(is_paid)
        return True
    except SQLAlchemyError:
        current_app.logger.warning("Failed to mirror paid flag for student %s", student_id, exc_info=True)
        return False


def unset_item_key(product_name: str) -> int:
    """
    Best-effort: remove a deleted product's key from every student's item map.

    Returns the number of students updated (0 on failure).
    """
    key = product_item_key(product_name)
    updated = 0
    try:
        with db.session.begin_nested():
            for student in db.session.query(Student).all():
                if student.items and key in student.items:
                    del student.items[key]
                    updated += 1
    except SQLAlchemyError:
        current_app.logger.warning("Failed to remove item key %r from students", key, exc_info=True)
        return 0
    return updated
