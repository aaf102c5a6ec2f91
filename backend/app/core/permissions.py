"""Role-based access control tables.

Roles are a fixed enum; each role maps to a flat list of permission strings.
The role used for any check must come from the ``users`` row, never from a
client-supplied value (the ``user-role`` cookie only drives UI rendering).
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Iterable, List, Optional


class Role(str, Enum):
    admin = "admin"
    teacher = "teacher"
    parent = "parent"
    student = "student"


ROLE_VALUES = {r.value for r in Role}


PERMISSIONS: Dict[str, str] = {
    # Người dùng
    "users.view": "Xem danh sách người dùng",
    "users.create": "Tạo người dùng mới",
    "users.edit": "Chỉnh sửa thông tin người dùng",
    "users.delete": "Xóa người dùng",
    "users.manage_roles": "Quản lý vai trò người dùng",
    "users.edit_own": "Chỉnh sửa thông tin cá nhân (tài khoản riêng)",
    # Học sinh
    "students.view": "Xem danh sách học sinh",
    "students.create": "Thêm học sinh mới",
    "students.edit": "Chỉnh sửa thông tin học sinh",
    "students.delete": "Xóa học sinh",
    "students.assign_teacher": "Gán giáo viên cho học sinh",
    # Giáo viên
    "teachers.view": "Xem danh sách giáo viên",
    "teachers.create": "Thêm giáo viên mới",
    "teachers.edit": "Chỉnh sửa thông tin giáo viên",
    "teachers.delete": "Xóa giáo viên",
    # Bài tập
    "assignments.view": "Xem bài tập",
    "assignments.create": "Tạo bài tập mới",
    "assignments.edit": "Chỉnh sửa bài tập",
    "assignments.delete": "Xóa bài tập",
    "assignments.grade": "Chấm điểm bài tập",
    "assignments.assign": "Giao bài tập cho học sinh",
    "assignments.submit": "Nộp bài tập",
    # Bài học
    "lessons.view": "Xem bài học",
    "lessons.create": "Tạo bài học mới",
    "lessons.edit": "Chỉnh sửa bài học",
    "lessons.delete": "Xóa bài học",
    "lessons.publish": "Xuất bản bài học",
    # Báo cáo
    "analytics.view": "Xem báo cáo thống kê",
    "analytics.class": "Xem báo cáo lớp học",
    "analytics.student": "Xem báo cáo học sinh",
    "analytics.system": "Xem báo cáo hệ thống",
    # Hệ thống
    "system.config": "Cấu hình hệ thống",
    "system.backup": "Sao lưu dữ liệu",
    "system.restore": "Khôi phục dữ liệu",
    "system.logs": "Xem nhật ký hệ thống",
    # Nội dung
    "content.manage": "Quản lý nội dung",
    "content.moderate": "Kiểm duyệt nội dung",
    "content.publish": "Xuất bản nội dung",
    # Thông báo
    "notifications.view": "Xem thông báo",
    "notifications.send": "Gửi thông báo",
    "notifications.manage": "Quản lý thông báo",
    # Token
    "tokens.view": "Xem thông tin token",
    "tokens.manage": "Quản lý token",
    "tokens.reset": "Reset token quota",
    # Thanh toán
    "payments.create": "Tạo yêu cầu thanh toán",
    "payments.manage": "Duyệt / từ chối thanh toán",
    # AI
    "ai.generate_exercises": "Sinh bài tập bằng AI",
    "ai.generate_lessons": "Sinh bài học bằng AI",
    "ai.chat": "Sử dụng AI chat",
    "ai.advanced_features": "Sử dụng tính năng AI nâng cao",
}


ROLE_PERMISSIONS: Dict[str, List[str]] = {
    Role.admin.value: list(PERMISSIONS.keys()),
    Role.teacher.value: [
        "students.view", "students.create", "students.edit", "students.assign_teacher",
        "assignments.view", "assignments.create", "assignments.edit", "assignments.grade", "assignments.assign",
        "lessons.view", "lessons.create", "lessons.edit", "lessons.publish",
        "analytics.view", "analytics.class", "analytics.student",
        "notifications.view", "notifications.send",
        "tokens.view",
        "payments.create",
        "ai.generate_exercises", "ai.generate_lessons", "ai.chat",
        "users.edit_own",
    ],
    Role.parent.value: [
        # students.* / analytics.student chỉ áp dụng cho con của chính phụ huynh
        "students.view", "students.edit",
        "assignments.view",
        "lessons.view",
        "analytics.view", "analytics.student",
        "notifications.view",
        "tokens.view",
        "payments.create",
        "ai.chat",
        "users.edit_own",
    ],
    Role.student.value: [
        "assignments.view", "assignments.submit",
        "lessons.view",
        "analytics.view", "analytics.student",
        "notifications.view",
        "tokens.view",
        "ai.chat",
        "users.edit_own",
    ],
}


# Frontend page paths + API prefixes. "prefix*" patterns match by prefix.
ROUTE_PERMISSIONS: Dict[str, List[str]] = {
    "/admin": ["analytics.system"],
    "/admin/users": ["users.view", "users.manage_roles"],
    "/admin/payments": ["payments.manage"],
    "/admin/token-analytics": ["analytics.system"],
    "/admin/teacher-students": ["students.assign_teacher", "users.manage_roles"],
    "/admin/create-teacher": ["teachers.create"],
    "/teacher": ["analytics.class"],
    "/teacher/students": ["students.view", "students.create", "students.edit"],
    "/teacher/assignments": ["assignments.view", "assignments.create", "assignments.edit"],
    "/teacher/grading": ["assignments.grade"],
    "/teacher/lesson-planner": ["ai.generate_lessons"],
    "/teacher/exercise-generator": ["ai.generate_exercises"],
    "/teacher/tests": ["ai.generate_lessons"],
    "/dashboard": ["analytics.student"],
    "/dashboard/assignments": ["assignments.view"],
    "/dashboard/lessons": ["lessons.view"],
    "/dashboard/progress": ["analytics.student"],
    "/dashboard/account": ["users.edit_own"],
    "/payment": ["payments.create"],
    "/api/admin/*": ["system.config"],
    "/api/teacher/*": ["assignments.create", "students.view"],
    "/api/student/*": ["assignments.view", "lessons.view"],
    "/api/notifications/*": ["notifications.view"],
    "/api/lessons*": ["lessons.view"],
}


def normalize_role(role: Optional[str]) -> Optional[str]:
    if not role:
        return None
    r = str(role).strip().lower()
    return r if r in ROLE_VALUES else None


def get_permissions_for_role(role: Optional[str]) -> List[str]:
    r = normalize_role(role)
    if not r:
        return []
    return list(ROLE_PERMISSIONS.get(r, []))


def has_permission(role: Optional[str], permission: str) -> bool:
    return permission in get_permissions_for_role(role)


def has_any_permission(role: Optional[str], permissions: Iterable[str]) -> bool:
    granted = set(get_permissions_for_role(role))
    return any(p in granted for p in permissions)


def has_all_permissions(role: Optional[str], permissions: Iterable[str]) -> bool:
    granted = set(get_permissions_for_role(role))
    return all(p in granted for p in permissions)


def _match_route(path: str) -> Optional[str]:
    if path in ROUTE_PERMISSIONS:
        return path
    for pattern in ROUTE_PERMISSIONS:
        if pattern.endswith("*") and path.startswith(pattern[:-1]):
            return pattern
    return None


def can_access_route(role: Optional[str], path: str) -> bool:
    if not normalize_role(role):
        return False
    pattern = _match_route(str(path or "").rstrip("/") or "/")
    if pattern is None:
        return has_permission(role, "analytics.view")
    return has_any_permission(role, ROUTE_PERMISSIONS[pattern])


def redirect_for_role(role: Optional[str]) -> str:
    r = normalize_role(role)
    if r == Role.admin.value:
        return "/admin"
    if r == Role.teacher.value:
        return "/teacher"
    return "/dashboard"
