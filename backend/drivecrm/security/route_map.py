# drivecrm/security/route_map.py
# Static (method, path) -> (module, action) table for API routes.
# Anything not listed here, and not allowlisted below, is denied.
import re
from typing import NamedTuple, Optional, Pattern

from .keys import Action, Module, parse_action, parse_module


class RoutePermissionRule(NamedTuple):
    method: str
    pattern: Pattern
    module: Module
    action: Action


class RouteMatcher(NamedTuple):
    method: Optional[str]
    pattern: Pattern


def _rule(method: str, pattern: str, module: str, action: str) -> RoutePermissionRule:
    return RoutePermissionRule(method, re.compile(pattern), parse_module(module), parse_action(action))


def _allow(pattern: str, method: Optional[str] = None) -> RouteMatcher:
    return RouteMatcher(method, re.compile(pattern))


# Routes that authenticate themselves or need no auth at all
PUBLIC_API_ROUTES = (
    _allow(r"^/api/health(/|$)"),
    _allow(r"^/api/auth(/|$)"),
    _allow(r"^/api/student/auth/login$", "POST"),
    _allow(r"^/api/student/auth/register$", "POST"),
    _allow(r"^/api/student/auth/logout$", "POST"),
    _allow(r"^/api/student/me$", "GET"),
    _allow(r"^/api/student/content$", "GET"),
    _allow(r"^/api/templates(/|$)"),
    _allow(r"^/api/public/tuition-plans$", "GET"),
    _allow(r"^/api/public/lead$", "POST"),
    _allow(r"^/api/public/seed-tuition$", "POST"),
    _allow(r"^/api/tracking-codes$", "GET"),
)

# Routes called by automation with a service token + HMAC signature
SECRET_AUTH_ROUTES = (
    _allow(r"^/api/outbound/callback$", "POST"),
    _allow(r"^/api/marketing/ingest$", "POST"),
    _allow(r"^/api/marketing/report$", "POST"),
    _allow(r"^/api/ops/pulse$", "POST"),
    _allow(r"^/api/cron/daily$", "POST"),
    _allow(r"^/api/worker/outbound$", "POST"),
    _allow(r"^/api/insights/expenses/ingest$", "POST"),
    _allow(r"^/api/ai/suggestions/ingest$", "POST"),
    _allow(r"^/api/outbound/jobs/[^/]+$", "PATCH"),
    _allow(r"^/api/automation/logs/ingest$", "POST"),
    _allow(r"^/api/student-progress/daily$", "POST"),
    _allow(r"^/api/student-progress/attempt$", "POST"),
    _allow(r"^/api/student-progress/ai-summary$", "POST"),
    _allow(r"^/api/student-progress/events$", "POST"),
)

ROUTE_PERMISSION_RULES = (
    _rule("GET", r"^/api/kpi/daily$", "kpi_daily", "VIEW"),
    _rule("GET", r"^/api/kpi/targets$", "kpi_targets", "VIEW"),
    _rule("POST", r"^/api/kpi/targets$", "kpi_targets", "EDIT"),
    _rule("GET", r"^/api/goals$", "goals", "VIEW"),
    _rule("POST", r"^/api/goals$", "goals", "EDIT"),
    _rule("GET", r"^/api/ai/suggestions$", "ai_suggestions", "VIEW"),
    _rule("POST", r"^/api/ai/suggestions$", "ai_suggestions", "CREATE"),
    _rule("POST", r"^/api/ai/suggestions/[^/]+/feedback$", "ai_suggestions", "FEEDBACK"),
    _rule("GET", r"^/api/ai/suggestions/(analytics|summary|trend)$", "ai_suggestions", "VIEW"),
    _rule("GET", r"^/api/tasks$", "notifications", "VIEW"),
    _rule("POST", r"^/api/tasks$", "notifications", "CREATE"),
    _rule("PATCH", r"^/api/tasks/[^/]+$", "notifications", "UPDATE"),
    _rule("GET", r"^/api/me/payroll$", "my_payroll", "VIEW"),

    _rule("GET", r"^/api(/admin)?/users$", "admin_users", "VIEW"),
    _rule("POST", r"^/api(/admin)?/users$", "admin_users", "CREATE"),
    _rule("GET", r"^/api(/admin)?/users/[^/]+$", "admin_users", "VIEW"),
    _rule("PATCH", r"^/api(/admin)?/users/[^/]+$", "admin_users", "UPDATE"),
    _rule("POST", r"^/api/admin/users/bulk-toggle$", "admin_users", "UPDATE"),

    _rule("GET", r"^/api/admin/branches$", "admin_branches", "VIEW"),
    _rule("POST", r"^/api/admin/branches$", "admin_branches", "CREATE"),
    _rule("PATCH", r"^/api/admin/branches/[^/]+$", "admin_branches", "UPDATE"),
    _rule("DELETE", r"^/api/admin/branches/[^/]+$", "admin_branches", "DELETE"),

    _rule("GET", r"^/api/students$", "students", "VIEW"),
    _rule("POST", r"^/api/students$", "students", "CREATE"),
    _rule("POST", r"^/api/students/bulk-status$", "students", "UPDATE"),
    _rule("GET", r"^/api/students/[^/]+$", "students", "VIEW"),
    _rule("PATCH", r"^/api/students/[^/]+$", "students", "UPDATE"),
    _rule("GET", r"^/api/students/[^/]+/(finance|app-progress)$", "students", "VIEW"),

    _rule("GET", r"^/api/courses$", "courses", "VIEW"),
    _rule("POST", r"^/api/courses$", "courses", "CREATE"),
    _rule("GET", r"^/api/courses/[^/]+$", "courses", "VIEW"),
    _rule("PATCH", r"^/api/courses/[^/]+$", "courses", "UPDATE"),
    _rule("GET", r"^/api/courses/[^/]+/schedule$", "schedule", "VIEW"),
    _rule("POST", r"^/api/courses/[^/]+/schedule$", "schedule", "CREATE"),

    _rule("GET", r"^/api/notifications$", "notifications", "VIEW"),
    _rule("PATCH", r"^/api/notifications/[^/]+$", "notifications", "UPDATE"),
    _rule("POST", r"^/api/notifications/generate$", "notifications", "CREATE"),

    _rule("GET", r"^/api/outbound/messages$", "messaging", "VIEW"),
    _rule("POST", r"^/api/outbound/messages$", "messaging", "CREATE"),
    _rule("GET", r"^/api/outbound/jobs$", "outbound_jobs", "VIEW"),
    _rule("POST", r"^/api/outbound/jobs$", "outbound_jobs", "CREATE"),
    _rule("POST", r"^/api/outbound/dispatch$", "messaging", "RUN"),

    _rule("GET", r"^/api/leads$", "leads", "VIEW"),
    _rule("POST", r"^/api/leads$", "leads", "CREATE"),
    _rule("POST", r"^/api/leads/(assign|auto-assign|bulk-assign)$", "leads", "ASSIGN"),
    _rule("GET", r"^/api/leads/(unassigned-count|stale|export)$", "leads", "VIEW"),
    _rule("GET", r"^/api/leads/[^/]+$", "leads", "VIEW"),
    _rule("PATCH", r"^/api/leads/[^/]+$", "leads", "UPDATE"),
    _rule("GET", r"^/api/leads/[^/]+/events$", "leads", "VIEW"),
    _rule("POST", r"^/api/leads/[^/]+/events$", "leads", "UPDATE"),

    _rule("GET", r"^/api/receipts$", "receipts", "VIEW"),
    _rule("POST", r"^/api/receipts$", "receipts", "CREATE"),
    _rule("GET", r"^/api/receipts/summary$", "receipts", "VIEW"),
    _rule("GET", r"^/api/receipts/[^/]+$", "receipts", "VIEW"),
    _rule("PATCH", r"^/api/receipts/[^/]+$", "receipts", "UPDATE"),

    _rule("GET", r"^/api/schedule$", "schedule", "VIEW"),
    _rule("POST", r"^/api/schedule$", "schedule", "CREATE"),
    _rule("GET", r"^/api/schedule/[^/]+$", "schedule", "VIEW"),
    _rule("PATCH", r"^/api/schedule/[^/]+$", "schedule", "UPDATE"),
    _rule("POST", r"^/api/schedule/[^/]+/attendance$", "schedule", "UPDATE"),

    _rule("GET", r"^/api/admin/payroll$", "hr_total_payroll", "VIEW"),
    _rule("POST", r"^/api/admin/payroll/(generate|finalize)$", "hr_total_payroll", "RUN"),
    _rule("GET", r"^/api/admin/salary-profiles$", "hr_payroll_profiles", "VIEW"),
    _rule("POST", r"^/api/admin/salary-profiles$", "hr_payroll_profiles", "CREATE"),
    _rule("GET", r"^/api/admin/salary-profiles/[^/]+$", "hr_payroll_profiles", "VIEW"),
    _rule("PATCH", r"^/api/admin/salary-profiles/[^/]+$", "hr_payroll_profiles", "UPDATE"),
    _rule("GET", r"^/api/admin/attendance$", "hr_attendance", "VIEW"),
    _rule("POST", r"^/api/admin/attendance$", "hr_attendance", "CREATE"),
    _rule("PATCH", r"^/api/admin/attendance/[^/]+$", "hr_attendance", "UPDATE"),
    _rule("GET", r"^/api/admin/employee-kpi$", "hr_kpi", "VIEW"),
    _rule("POST", r"^/api/admin/employee-kpi$", "hr_kpi", "CREATE"),
    _rule("PATCH", r"^/api/admin/employee-kpi/[^/]+$", "hr_kpi", "UPDATE"),
    _rule("GET", r"^/api/admin/commissions$", "hr_total_payroll", "VIEW"),
    _rule("POST", r"^/api/admin/commissions$", "hr_total_payroll", "RUN"),
    _rule("POST", r"^/api/admin/commissions(/paid50)?/rebuild$", "hr_total_payroll", "RUN"),

    _rule("GET", r"^/api/automation/logs$", "automation_logs", "VIEW"),
    _rule("POST", r"^/api/automation/logs$", "automation_logs", "CREATE"),
    _rule("POST", r"^/api/automation/run$", "automation_run", "RUN"),
    _rule("POST", r"^/api/admin/worker/outbound$", "admin_send_progress", "RUN"),
    _rule("GET", r"^/api(/admin)?/scheduler/health$", "admin_plans", "VIEW"),
    _rule("POST", r"^/api/admin/cron/daily$", "admin_automation_admin", "RUN"),

    _rule("GET", r"^/api/admin/ops/pulse$", "ops_ai_hr", "VIEW"),
    _rule("POST", r"^/api/admin/ops/pulse$", "ops_ai_hr", "RUN"),
    _rule("GET", r"^/api/admin/n8n/workflows(/[^/]+)?$", "ops_n8n", "VIEW"),
    _rule("GET", r"^/api/admin/automation/(overview|jobs|logs|errors)$", "ops_n8n", "VIEW"),

    _rule("GET", r"^/api/admin/permission-groups$", "admin_users", "VIEW"),
    _rule("POST", r"^/api/admin/permission-groups$", "admin_users", "CREATE"),
    _rule("GET", r"^/api/admin/permission-groups/[^/]+$", "admin_users", "VIEW"),
    _rule("PATCH", r"^/api/admin/permission-groups/[^/]+$", "admin_users", "UPDATE"),
    _rule("DELETE", r"^/api/admin/permission-groups/[^/]+$", "admin_users", "DELETE"),
    _rule("GET", r"^/api/admin/permission-groups/[^/]+/rules$", "admin_users", "VIEW"),
    _rule("PUT", r"^/api/admin/permission-groups/[^/]+/rules$", "admin_users", "UPDATE"),
    _rule("GET", r"^/api/admin/users/[^/]+/permission-overrides$", "admin_users", "VIEW"),
    _rule("PUT", r"^/api/admin/users/[^/]+/permission-overrides$", "admin_users", "UPDATE"),

    _rule("GET", r"^/api/tuition-plans$", "admin_tuition", "VIEW"),
    _rule("POST", r"^/api/tuition-plans$", "admin_tuition", "CREATE"),
    _rule("GET", r"^/api/tuition-plans/[^/]+$", "admin_tuition", "VIEW"),
    _rule("PATCH", r"^/api/tuition-plans/[^/]+$", "admin_tuition", "UPDATE"),

    _rule("GET", r"^/api/admin/student-content$", "admin_student_content", "VIEW"),
    _rule("POST", r"^/api/admin/student-content$", "admin_student_content", "CREATE"),
    _rule("PATCH", r"^/api/admin/student-content/[^/]+$", "admin_student_content", "UPDATE"),

    _rule("GET", r"^/api/admin/marketing/reports$", "marketing_meta_ads", "VIEW"),
    _rule("POST", r"^/api/admin/marketing/(report|ingest)$", "marketing_meta_ads", "CREATE"),
    _rule("GET", r"^/api/marketing/metrics$", "marketing_meta_ads", "VIEW"),

    _rule("GET", r"^/api/expenses/(daily|summary)$", "expenses", "VIEW"),
    _rule("POST", r"^/api/expenses/daily$", "expenses", "EDIT"),
    _rule("GET", r"^/api/expenses/base-salary$", "salary", "VIEW"),
    _rule("POST", r"^/api/expenses/base-salary$", "salary", "EDIT"),
    _rule("GET", r"^/api/insights/expenses$", "insights", "VIEW"),

    _rule("GET", r"^/api/admin/tracking-codes$", "admin_tracking", "VIEW"),
    _rule("POST", r"^/api/admin/tracking-codes$", "admin_tracking", "CREATE"),
    _rule("PATCH", r"^/api/admin/tracking-codes/[^/]+$", "admin_tracking", "UPDATE"),
    _rule("DELETE", r"^/api/admin/tracking-codes/[^/]+$", "admin_tracking", "DELETE"),
)


def _matches_allowlist(pathname: str, method: str, matchers) -> bool:
    method = method.upper()
    for m in matchers:
        if m.method and m.method != method:
            continue
        if m.pattern.search(pathname):
            return True
    return False


def is_public_api_route(pathname: str, method: str) -> bool:
    return _matches_allowlist(pathname, method, PUBLIC_API_ROUTES)


def is_secret_auth_route(pathname: str, method: str) -> bool:
    return _matches_allowlist(pathname, method, SECRET_AUTH_ROUTES)


def is_allowlisted_api_route(pathname: str, method: str) -> bool:
    return is_public_api_route(pathname, method) or is_secret_auth_route(pathname, method)


def resolve_route_permission(pathname: str, method: str) -> Optional[RoutePermissionRule]:
    """First rule matching (method, path), or None if the route is unmapped."""
    method = method.upper()
    for rule in ROUTE_PERMISSION_RULES:
        if rule.method == method and rule.pattern.search(pathname):
            return rule
    return None
