"""
Tests for rehabtriage.rbac -- Role-Based Access Control.
"""

import pytest

from rehabtriage.errors import Forbidden
from rehabtriage.models import StaffRole
from rehabtriage.rbac import check_permission, get_permissions_for_role, require_permission


class TestRBAC:
    def test_clinician_can_decide(self):
        assert check_permission(StaffRole.CLINICIAN, "decide_progress_update") is True

    def test_caregiver_cannot_decide(self):
        assert check_permission(StaffRole.CAREGIVER, "decide_progress_update") is False

    def test_caregiver_can_submit_and_self_review(self):
        assert check_permission(StaffRole.CAREGIVER, "submit_progress_update") is True
        assert check_permission(StaffRole.CAREGIVER, "self_review_progress_update") is True

    def test_clinician_cannot_self_review(self):
        assert check_permission(StaffRole.CLINICIAN, "self_review_progress_update") is False

    def test_receptionist_can_assign(self):
        assert check_permission(StaffRole.RECEPTIONIST, "assign_caregiver") is True

    def test_nurse_cannot_assign(self):
        assert check_permission(StaffRole.NURSE, "assign_caregiver") is False

    def test_only_admin_exports_audit(self):
        allowed = [r for r in StaffRole if check_permission(r, "export_audit")]
        assert allowed == [StaffRole.ADMIN]

    def test_every_role_views_reports(self):
        assert all(check_permission(r, "view_triage_report") for r in StaffRole)

    def test_unknown_action_denied(self):
        assert check_permission(StaffRole.ADMIN, "delete_patient") is False

    def test_require_permission_raises_on_denied(self):
        with pytest.raises(Forbidden):
            require_permission(StaffRole.NURSE, "decide_progress_update")

    def test_forbidden_is_a_permission_error(self):
        with pytest.raises(PermissionError):
            require_permission(StaffRole.CAREGIVER, "export_audit")

    def test_require_permission_passes_on_allowed(self):
        require_permission(StaffRole.CLINICIAN, "decide_progress_update")  # should not raise

    def test_get_permissions_returns_all_actions(self):
        perms = get_permissions_for_role(StaffRole.CAREGIVER)
        assert set(perms) == {
            "assign_caregiver",
            "view_triage_report",
            "submit_progress_update",
            "self_review_progress_update",
            "decide_progress_update",
            "export_audit",
        }
        assert perms["submit_progress_update"] is True
        assert perms["assign_caregiver"] is False
