from __future__ import annotations

from sqlalchemy.ext.mutable import MutableDict

from ..extensions import db
from campus_store.time_utils import to_utc_z


class Student(db.Model):
    """
    Student account as seen by the stock core.

    `items` maps a product key (lowercased name, whitespace runs replaced
    by "_") to True once the student has received that item. `paid` only
    flips false -> true from a paid sale; explicit payment edits mirror
    the transaction's flag.
    """
    __tablename__ = "students"
    __table_args__ = (
        db.UniqueConstraint("student_code", name="uq_students_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    student_code = db.Column(db.String(64), nullable=False)
    course = db.Column(db.String(120), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    branch = db.Column(db.String(120), nullable=False, default="")

    items = db.Column(MutableDict.as_mutable(db.JSON), nullable=False, default=dict)
    paid = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Student id={self.id} code={self.student_code!r} course={self.course!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "student_code": self.student_code,
            "course": self.course,
            "year": self.year,
            "branch": self.branch,
            "items": dict(self.items or {}),
            "paid": self.paid,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
