from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.permissions import Role
from app.models.assignment import Assignment, StudentAssignment, SubmissionStatus
from app.models.teacher_student import TeacherStudent
from app.models.user import User
from app.services.notification_service import notify_safely

logger = logging.getLogger(__name__)

GRADE_MIN = 0.0
GRADE_MAX = 10.0


def _status(sa: StudentAssignment) -> str:
    return str(sa.status.value if hasattr(sa.status, "value") else sa.status)


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


# ===== Liên kết giáo viên - học sinh =====


def linked_student_ids(db: Session, teacher_id: int) -> set[int]:
    rows = db.query(TeacherStudent.student_id).filter(TeacherStudent.teacher_id == int(teacher_id)).all()
    return {int(r[0]) for r in rows}


def link_teacher_student(db: Session, teacher_id: int, student_id: int) -> TeacherStudent:
    teacher = db.query(User).filter(User.id == int(teacher_id)).first()
    student = db.query(User).filter(User.id == int(student_id)).first()
    if not teacher or teacher.role != Role.teacher.value:
        raise HTTPException(status_code=400, detail="teacher_id must be a teacher account")
    if not student or student.role != Role.student.value:
        raise HTTPException(status_code=400, detail="student_id must be a student account")

    row = TeacherStudent(teacher_id=int(teacher_id), student_id=int(student_id))
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Student already linked to this teacher")
    db.refresh(row)
    return row


def unlink_teacher_student(db: Session, teacher_id: int, student_id: int) -> None:
    rows = (
        db.query(TeacherStudent)
        .filter(TeacherStudent.teacher_id == int(teacher_id), TeacherStudent.student_id == int(student_id))
        .delete(synchronize_session=False)
    )
    if rows == 0:
        raise HTTPException(status_code=404, detail="Link not found")
    db.commit()


def list_links(db: Session, teacher_id: int | None = None) -> List[Dict[str, Any]]:
    q = db.query(TeacherStudent)
    if teacher_id is not None:
        q = q.filter(TeacherStudent.teacher_id == int(teacher_id))
    rows = q.order_by(TeacherStudent.id.asc()).all()
    ids = {r.teacher_id for r in rows} | {r.student_id for r in rows}
    users = {u.id: u for u in db.query(User).filter(User.id.in_(ids)).all()} if ids else {}
    out = []
    for r in rows:
        t, s = users.get(r.teacher_id), users.get(r.student_id)
        out.append(
            {
                "id": int(r.id),
                "teacher_id": int(r.teacher_id),
                "teacher_name": t.full_name if t else None,
                "student_id": int(r.student_id),
                "student_name": s.full_name if s else None,
                "student_email": s.email if s else None,
                "created_at": _iso(r.created_at),
            }
        )
    return out


def list_my_students(db: Session, teacher: User) -> List[Dict[str, Any]]:
    ids = linked_student_ids(db, int(teacher.id))
    if not ids:
        return []
    rows = db.query(User).filter(User.id.in_(ids)).order_by(User.full_name.asc(), User.id.asc()).all()
    return [{"id": int(u.id), "email": u.email, "full_name": u.full_name, "grade": u.grade} for u in rows]


# ===== Giáo viên =====


def assignment_out(a: Assignment, *, include_answers: bool) -> Dict[str, Any]:
    out = {
        "id": int(a.id),
        "teacher_id": int(a.teacher_id),
        "title": a.title,
        "subject": a.subject,
        "grade": a.grade,
        "topic": a.topic,
        "deadline": _iso(a.deadline),
        "questions": a.questions or [],
        "created_at": _iso(a.created_at),
    }
    if include_answers:
        out["answers"] = a.answers or []
    return out


def submission_out(sa: StudentAssignment, student: Optional[User] = None) -> Dict[str, Any]:
    out = {
        "id": int(sa.id),
        "assignment_id": int(sa.assignment_id),
        "student_id": int(sa.student_id),
        "status": _status(sa),
        "answers": sa.answers,
        "submitted_at": _iso(sa.submitted_at),
        "grade": sa.grade,
        "feedback": sa.feedback,
        "graded_at": _iso(sa.graded_at),
    }
    if student is not None:
        out["student_name"] = student.full_name
        out["student_email"] = student.email
    return out


def create_assignment(
    db: Session,
    teacher: User,
    *,
    title: str,
    subject: str,
    student_ids: List[int],
    questions: List[Dict[str, Any]],
    answers: Optional[List[Any]] = None,
    grade: Optional[str] = None,
    topic: Optional[str] = None,
    deadline: Optional[datetime] = None,
) -> Assignment:
    ids = {int(s) for s in student_ids}
    if not ids:
        raise HTTPException(status_code=400, detail="student_ids is required")
    if not questions:
        raise HTTPException(status_code=400, detail="questions is required")

    if teacher.role != Role.admin.value:
        outside = ids - linked_student_ids(db, int(teacher.id))
        if outside:
            raise HTTPException(
                status_code=403,
                detail={"code": "NOT_YOUR_STUDENTS", "message": "Students are not linked to you", "student_ids": sorted(outside)},
            )
    found = {int(r[0]) for r in db.query(User.id).filter(User.id.in_(ids), User.role == Role.student.value).all()}
    if found != ids:
        raise HTTPException(status_code=404, detail={"code": "STUDENT_NOT_FOUND", "message": "Unknown students", "student_ids": sorted(ids - found)})

    a = Assignment(
        teacher_id=int(teacher.id),
        title=str(title).strip(),
        subject=str(subject).strip(),
        grade=grade,
        topic=topic,
        deadline=deadline,
        questions=list(questions),
        answers=list(answers or []),
    )
    db.add(a)
    db.flush()

    for sid in sorted(ids):
        db.add(StudentAssignment(assignment_id=int(a.id), student_id=sid, status=SubmissionStatus.assigned))
    db.flush()
    for sid in sorted(ids):
        notify_safely(
            db,
            user_id=sid,
            type="info",
            title="Bài tập mới",
            message=f'Bạn có bài tập mới: "{a.title}"',
            data={"assignment_id": int(a.id)},
            action_url=f"/dashboard/assignments/{a.id}",
        )
    db.commit()
    db.refresh(a)
    logger.info("assignment created id=%s teacher_id=%s students=%s", a.id, teacher.id, len(ids))
    return a


def _owned_assignment(db: Session, teacher: User, assignment_id: int) -> Assignment:
    a = db.query(Assignment).filter(Assignment.id == int(assignment_id)).first()
    if not a or (teacher.role != Role.admin.value and int(a.teacher_id) != int(teacher.id)):
        raise HTTPException(status_code=404, detail="Assignment not found")
    return a


def list_teacher_assignments(db: Session, teacher: User) -> List[Dict[str, Any]]:
    rows = (
        db.query(Assignment)
        .filter(Assignment.teacher_id == int(teacher.id))
        .order_by(Assignment.created_at.desc(), Assignment.id.desc())
        .all()
    )
    ids = [int(a.id) for a in rows]
    counts: Dict[int, Dict[str, int]] = {}
    if ids:
        for aid, status, n in (
            db.query(StudentAssignment.assignment_id, StudentAssignment.status, func.count(StudentAssignment.id))
            .filter(StudentAssignment.assignment_id.in_(ids))
            .group_by(StudentAssignment.assignment_id, StudentAssignment.status)
            .all()
        ):
            key = str(status.value if hasattr(status, "value") else status)
            counts.setdefault(int(aid), {})[key] = int(n)

    out = []
    for a in rows:
        c = counts.get(int(a.id), {})
        item = assignment_out(a, include_answers=True)
        item["total_students"] = sum(c.values())
        item["submitted_count"] = c.get("submitted", 0) + c.get("graded", 0)
        item["graded_count"] = c.get("graded", 0)
        out.append(item)
    return out


def list_submissions(db: Session, teacher: User, assignment_id: int) -> List[Dict[str, Any]]:
    a = _owned_assignment(db, teacher, assignment_id)
    rows = (
        db.query(StudentAssignment, User)
        .join(User, User.id == StudentAssignment.student_id)
        .filter(StudentAssignment.assignment_id == int(a.id))
        .order_by(StudentAssignment.id.asc())
        .all()
    )
    return [submission_out(sa, u) for sa, u in rows]


def grade_submission(
    db: Session,
    teacher: User,
    submission_id: int,
    *,
    grade: float,
    feedback: Optional[str] = None,
) -> StudentAssignment:
    g = float(grade)
    if not GRADE_MIN <= g <= GRADE_MAX:
        raise HTTPException(status_code=400, detail="grade must be between 0 and 10")

    sa = db.query(StudentAssignment).filter(StudentAssignment.id == int(submission_id)).first()
    if not sa:
        raise HTTPException(status_code=404, detail="Submission not found")
    a = _owned_assignment(db, teacher, int(sa.assignment_id))
    if _status(sa) == SubmissionStatus.assigned.value:
        raise HTTPException(status_code=409, detail="Submission has not been submitted yet")

    sa.status = SubmissionStatus.graded
    sa.grade = g
    sa.feedback = (feedback or "").strip() or None
    sa.graded_at = datetime.now(timezone.utc)
    db.flush()
    notify_safely(
        db,
        user_id=int(sa.student_id),
        type="info",
        title="Kết quả chấm bài",
        message=f'Bài tập "{a.title}" đã được chấm điểm. Điểm số: {g:g}/10',
        data={"submission_id": int(sa.id), "assignment_id": int(a.id), "grade": g},
        action_url=f"/dashboard/assignments/{a.id}",
    )
    db.commit()
    db.refresh(sa)
    return sa


# ===== Học sinh =====


def list_student_assignments(db: Session, student: User) -> List[Dict[str, Any]]:
    rows = (
        db.query(StudentAssignment, Assignment)
        .join(Assignment, Assignment.id == StudentAssignment.assignment_id)
        .filter(StudentAssignment.student_id == int(student.id))
        .order_by(Assignment.created_at.desc(), Assignment.id.desc())
        .all()
    )
    out = []
    for sa, a in rows:
        item = assignment_out(a, include_answers=False)
        item["submission"] = submission_out(sa)
        out.append(item)
    return out


def submit_assignment(db: Session, student: User, assignment_id: int, answers: List[Any]) -> StudentAssignment:
    if answers is None:
        raise HTTPException(status_code=400, detail="answers is required")
    sa = (
        db.query(StudentAssignment)
        .filter(StudentAssignment.assignment_id == int(assignment_id), StudentAssignment.student_id == int(student.id))
        .first()
    )
    if not sa:
        raise HTTPException(status_code=404, detail="Assignment not found")

    now = datetime.now(timezone.utc)
    rows = (
        db.query(StudentAssignment)
        .filter(StudentAssignment.id == int(sa.id), StudentAssignment.status == SubmissionStatus.assigned)
        .update(
            {
                StudentAssignment.status: SubmissionStatus.submitted,
                StudentAssignment.answers: list(answers),
                StudentAssignment.submitted_at: now,
            },
            synchronize_session=False,
        )
    )
    if rows == 0:
        db.rollback()
        raise HTTPException(status_code=409, detail="Assignment already submitted")

    a = db.query(Assignment).filter(Assignment.id == int(assignment_id)).one()
    notify_safely(
        db,
        user_id=int(a.teacher_id),
        type="info",
        title="Bài tập đã được nộp",
        message=f'{student.full_name or student.email} đã nộp bài "{a.title}". Cần chấm điểm.',
        data={"assignment_id": int(a.id), "student_id": int(student.id), "submission_id": int(sa.id)},
        action_url=f"/teacher/grading?assignment={a.id}",
    )
    db.commit()
    db.expire_all()
    return db.query(StudentAssignment).filter(StudentAssignment.id == int(sa.id)).one()
