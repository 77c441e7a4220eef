# drivecrm/security/keys.py
"""
Closed key sets shared by the permission resolver and every call site.

Adding a role, module or action is a deploy-time change: extend the enum,
then the default matrices in ``permissions.py`` and the route table in
``route_map.py``.
"""
from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    TELESALES = "telesales"
    DIRECT_PAGE = "direct_page"
    VIEWER = "viewer"


class Module(str, Enum):
    OVERVIEW = "overview"
    LEADS = "leads"
    LEADS_BOARD = "leads_board"
    KPI_DAILY = "kpi_daily"
    KPI_TARGETS = "kpi_targets"
    GOALS = "goals"
    AI_KPI_COACH = "ai_kpi_coach"
    AI_SUGGESTIONS = "ai_suggestions"
    STUDENTS = "students"
    COURSES = "courses"
    SCHEDULE = "schedule"
    RECEIPTS = "receipts"
    NOTIFICATIONS = "notifications"
    MESSAGING = "messaging"
    OUTBOUND_JOBS = "outbound_jobs"
    MY_PAYROLL = "my_payroll"
    OPS_AI_HR = "ops_ai_hr"
    OPS_N8N = "ops_n8n"
    AUTOMATION_LOGS = "automation_logs"
    AUTOMATION_RUN = "automation_run"
    MARKETING_META_ADS = "marketing_meta_ads"
    ADMIN_BRANCHES = "admin_branches"
    ADMIN_USERS = "admin_users"
    ADMIN_SEGMENTS = "admin_segments"
    ADMIN_TUITION = "admin_tuition"
    ADMIN_NOTIFICATION_ADMIN = "admin_notification_admin"
    ADMIN_AUTOMATION_ADMIN = "admin_automation_admin"
    ADMIN_SEND_PROGRESS = "admin_send_progress"
    ADMIN_PLANS = "admin_plans"
    ADMIN_STUDENT_CONTENT = "admin_student_content"
    ADMIN_TRACKING = "admin_tracking"
    HR_KPI = "hr_kpi"
    HR_PAYROLL_PROFILES = "hr_payroll_profiles"
    HR_ATTENDANCE = "hr_attendance"
    HR_TOTAL_PAYROLL = "hr_total_payroll"
    API_HUB = "api_hub"
    EXPENSES = "expenses"
    SALARY = "salary"
    INSIGHTS = "insights"


class Action(str, Enum):
    VIEW = "VIEW"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    EDIT = "EDIT"
    DELETE = "DELETE"
    EXPORT = "EXPORT"
    ASSIGN = "ASSIGN"
    RUN = "RUN"
    INGEST = "INGEST"
    FEEDBACK = "FEEDBACK"


ROLE_KEYS = tuple(r.value for r in Role)
MODULE_KEYS = tuple(m.value for m in Module)
ACTION_KEYS = tuple(a.value for a in Action)


def parse_role(value) -> Role:
    """Map a raw role claim onto the closed Role set (case-insensitive)."""
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        raise ValueError(f"invalid role: {value!r}")
    return Role(value.strip().lower())


def parse_module(value) -> Module:
    if isinstance(value, Module):
        return value
    if not isinstance(value, str):
        raise ValueError(f"invalid module: {value!r}")
    return Module(value.strip().lower())


def parse_action(value) -> Action:
    if isinstance(value, Action):
        return value
    if not isinstance(value, str):
        raise ValueError(f"invalid action: {value!r}")
    return Action(value.strip().upper())
