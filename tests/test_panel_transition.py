"""
Exhaustive transition tests for the panel status validator.

Declared graph (12 states):
    0  Issued For Production -> 1, 10, 11
    1  Produced              -> 2, 10, 11
    2  Proceed for Delivery  -> 3, 10, 11
    3  Delivered             -> 4, 5, 9, 10, 11
    4  Approved Material     -> 5, 6, 9, 10, 11
    5  Rejected Material     -> 0, 4, 9, 10, 11
    6  Installed             -> 7, 9, 10, 11
    7  Inspected             -> 8, 9, 10, 11
    8  Approved Final        -> (terminal)
    9  Broken at Site        -> 0, 3, 10, 11
    10 On Hold               -> every other status
    11 Cancelled             -> (terminal)

For the unconditional validator:
    - the full 12×12 matrix matches the declared graph
    - special destinations bypass the graph, self-transitions never pass
For the role-scoped validator:
    - role containment, Broken at Site guard, unknown roles
    - Administrator skip-ahead and forward-closure monotonicity
"""

import pytest

from panel_tracker.core.exceptions import (
    IllegalTransition,
    NoOpTransition,
    PreconditionNotMet,
    StatusOutOfRange,
    UnauthorizedRole,
    UnknownRole,
)
from panel_tracker.models.panel_status import (
    PanelStatus as S,
    ROLE_STATUS_PERMISSIONS,
    SPECIAL_STATUSES,
    STATUS_TRANSITIONS,
)
from panel_tracker.services.panel_transition import (
    forward_closure,
    next_statuses,
    next_statuses_for_role,
    validate_transition,
    validate_transition_for_role,
)

ADMIN = "Administrator"
STORE_SITE = "Store Site"
ALL = list(range(12))
ROLES = list(ROLE_STATUS_PERMISSIONS) + [ADMIN]

_EXPECTED_EDGES = {
    0: {1, 10, 11},
    1: {2, 10, 11},
    2: {3, 10, 11},
    3: {4, 5, 9, 10, 11},
    4: {5, 6, 9, 10, 11},
    5: {0, 4, 9, 10, 11},
    6: {7, 9, 10, 11},
    7: {8, 9, 10, 11},
    8: set(),
    9: {0, 3, 10, 11},
    10: {0, 1, 2, 3, 4, 5, 6, 7, 8, 9, 11},
    11: set(),
}


def _pairs():
    return [(s, d) for s in ALL for d in ALL]


# ═════════════════════════════════════════════════════════════════════════════
# 1. Graph & unconditional validator
# ═════════════════════════════════════════════════════════════════════════════


class TestDeclaredGraph:

    def test_graph_matches_declared_edges(self):
        assert {int(k): set(v) for k, v in STATUS_TRANSITIONS.items()} == _EXPECTED_EDGES

    def test_next_statuses_is_direct_lookup(self):
        for status in ALL:
            assert set(next_statuses(status)) == _EXPECTED_EDGES[status]

    def test_next_statuses_out_of_range(self):
        with pytest.raises(StatusOutOfRange):
            next_statuses(12)

    def test_rework_pair_is_bidirectional(self):
        assert validate_transition(S.APPROVED_MATERIAL, S.REJECTED_MATERIAL) is None
        assert validate_transition(S.REJECTED_MATERIAL, S.APPROVED_MATERIAL) is None


class TestValidateTransitionMatrix:

    @pytest.mark.parametrize("current,requested", _pairs())
    def test_matrix(self, current, requested):
        error = validate_transition(current, requested)
        if current == requested:
            assert isinstance(error, NoOpTransition)
        elif requested in SPECIAL_STATUSES or requested in _EXPECTED_EDGES[current]:
            assert error is None
        else:
            assert isinstance(error, IllegalTransition)
            assert error.allowed == _EXPECTED_EDGES[current]
            assert error.to_dict()["allowed"] == sorted(_EXPECTED_EDGES[current])

    @pytest.mark.parametrize("status", ALL)
    def test_self_transition_is_always_noop(self, status):
        error = validate_transition(status, status)
        assert isinstance(error, NoOpTransition)
        assert error.kind == "no_op"

    @pytest.mark.parametrize("current", [s for s in ALL if s not in SPECIAL_STATUSES])
    @pytest.mark.parametrize("special", [S.ON_HOLD, S.CANCELLED])
    def test_special_bypass(self, current, special):
        assert validate_transition(current, special) is None

    def test_terminal_still_accepts_special(self):
        assert validate_transition(S.APPROVED_FINAL, S.ON_HOLD) is None
        assert validate_transition(S.CANCELLED, S.ON_HOLD) is None

    @pytest.mark.parametrize("current,requested", [(-1, 0), (0, 12), (None, 3), (3, "4")])
    def test_out_of_range(self, current, requested):
        error = validate_transition(current, requested)
        assert isinstance(error, StatusOutOfRange)

    def test_validators_return_rather_than_raise(self):
        error = validate_transition(S.ISSUED_FOR_PRODUCTION, S.INSTALLED)
        assert isinstance(error, IllegalTransition)


# ═════════════════════════════════════════════════════════════════════════════
# 2. Role-scoped validator
# ═════════════════════════════════════════════════════════════════════════════


class TestScenarios:

    def test_store_site_declares_broken_after_delivery(self):
        assert validate_transition_for_role(S.DELIVERED, S.BROKEN_AT_SITE, STORE_SITE) is None

    def test_store_site_broken_before_delivery(self):
        error = validate_transition_for_role(S.ISSUED_FOR_PRODUCTION, S.BROKEN_AT_SITE, STORE_SITE)
        assert isinstance(error, PreconditionNotMet)
        assert error.to_dict()["kind"] == "precondition_not_met"

    def test_qc_site_rework_edge(self):
        assert validate_transition_for_role(S.APPROVED_MATERIAL, S.REJECTED_MATERIAL, "QC Site") is None

    def test_admin_cannot_jump_backward_from_terminal(self):
        error = validate_transition_for_role(S.APPROVED_FINAL, S.INSTALLED, ADMIN)
        assert isinstance(error, IllegalTransition)


class TestBrokenAtSiteGuard:

    def test_other_role_unauthorized(self):
        error = validate_transition_for_role(S.DELIVERED, S.BROKEN_AT_SITE, "QC Site")
        assert isinstance(error, UnauthorizedRole)
        assert error.role == "QC Site"
        assert error.allowed == ROLE_STATUS_PERMISSIONS["QC Site"]

    def test_cancelled_panel_cannot_break(self):
        error = validate_transition_for_role(S.CANCELLED, S.BROKEN_AT_SITE, STORE_SITE)
        assert isinstance(error, PreconditionNotMet)
        assert "cancelled" in error.reason

    def test_admin_is_subject_to_precondition(self):
        error = validate_transition_for_role(S.PRODUCED, S.BROKEN_AT_SITE, ADMIN)
        assert isinstance(error, PreconditionNotMet)
        assert validate_transition_for_role(S.INSTALLED, S.BROKEN_AT_SITE, ADMIN) is None

    def test_from_on_hold(self):
        assert validate_transition_for_role(S.ON_HOLD, S.BROKEN_AT_SITE, STORE_SITE) is None


class TestRoleTable:

    def test_unknown_role(self):
        error = validate_transition_for_role(S.PRODUCED, S.PROCEED_FOR_DELIVERY, "Intern")
        assert isinstance(error, UnknownRole)
        assert error.to_dict()["role"] == "Intern"

    def test_unknown_role_on_broken_at_site(self):
        error = validate_transition_for_role(S.DELIVERED, S.BROKEN_AT_SITE, "Intern")
        assert isinstance(error, UnknownRole)

    def test_customer_may_set_nothing(self):
        error = validate_transition_for_role(S.DELIVERED, S.APPROVED_MATERIAL, "Customer")
        assert isinstance(error, UnauthorizedRole)
        assert error.to_dict()["allowed"] == []

    def test_role_authority_never_overrides_graph(self):
        error = validate_transition_for_role(S.PRODUCED, S.INSTALLED, "Data Entry")
        assert isinstance(error, IllegalTransition)

    def test_noop_checked_before_role(self):
        error = validate_transition_for_role(S.DELIVERED, S.DELIVERED, "Intern")
        assert isinstance(error, NoOpTransition)

    @pytest.mark.parametrize("role", list(ROLE_STATUS_PERMISSIONS))
    def test_role_containment(self, role):
        for current, requested in _pairs():
            if validate_transition_for_role(current, requested, role) is None:
                assert requested in ROLE_STATUS_PERMISSIONS[role], (current, requested)

    @pytest.mark.parametrize("role", ROLES)
    def test_offered_statuses_are_accepted(self, role):
        """Every status offered outside On Hold passes validation, except
        Administrator's Broken at Site before Delivered."""
        for current in ALL:
            if current == S.ON_HOLD:
                continue
            for requested in next_statuses_for_role(current, role):
                error = validate_transition_for_role(current, requested, role)
                if error is not None:
                    assert role == ADMIN and requested == S.BROKEN_AT_SITE
                    assert isinstance(error, PreconditionNotMet)


# ═════════════════════════════════════════════════════════════════════════════
# 3. Next statuses per role
# ═════════════════════════════════════════════════════════════════════════════


class TestForwardClosure:

    def test_from_start_reaches_whole_main_line(self):
        assert forward_closure(S.ISSUED_FOR_PRODUCTION) == {1, 2, 3, 4, 5, 6, 7, 8}

    def test_skips_rework_and_special_edges(self):
        # 5 -> 0 and 5 -> 4 go backward; 9/10/11 are special
        assert forward_closure(S.REJECTED_MATERIAL) == frozenset()
        assert forward_closure(S.BROKEN_AT_SITE) == frozenset()

    def test_terminal(self):
        assert forward_closure(S.APPROVED_FINAL) == frozenset()

    def test_middle(self):
        assert forward_closure(S.APPROVED_MATERIAL) == {5, 6, 7, 8}


class TestNextStatusesForRole:

    def test_admin_forward_closure_plus_specials(self):
        assert next_statuses_for_role(S.DELIVERED, ADMIN) == {4, 5, 6, 7, 8, 9, 10, 11}

    def test_admin_excludes_current(self):
        assert S.CANCELLED not in next_statuses_for_role(S.CANCELLED, ADMIN)
        assert next_statuses_for_role(S.CANCELLED, ADMIN) == {9, 10}

    @pytest.mark.parametrize("current", [s for s in ALL if s != S.ON_HOLD])
    def test_admin_monotonic(self, current):
        offered = next_statuses_for_role(current, ADMIN)
        backward = {s for s in offered if s < current}
        assert backward <= SPECIAL_STATUSES

    def test_admin_on_hold_resumes_previous(self):
        assert next_statuses_for_role(S.ON_HOLD, ADMIN, previous_status=S.INSTALLED) == {6, 9, 11}

    def test_admin_on_hold_without_previous(self):
        assert next_statuses_for_role(S.ON_HOLD, ADMIN) == {9, 11}

    def test_store_site_gets_broken_after_delivery(self):
        assert next_statuses_for_role(S.DELIVERED, STORE_SITE) == {9, 10}
        assert next_statuses_for_role(S.INSTALLED, STORE_SITE) == {9, 10}

    def test_store_site_no_broken_before_delivery(self):
        assert next_statuses_for_role(S.PROCEED_FOR_DELIVERY, STORE_SITE) == {3, 10}

    def test_other_roles_intersect_graph(self):
        assert next_statuses_for_role(S.DELIVERED, "QC Site") == {4, 5, 10}
        assert next_statuses_for_role(S.APPROVED_MATERIAL, "Foreman Site") == {6, 10}

    def test_unknown_role_gets_nothing(self):
        assert next_statuses_for_role(S.DELIVERED, "Intern") == frozenset()

    @pytest.mark.parametrize("role", ROLES)
    def test_never_contains_current(self, role):
        for current in ALL:
            assert current not in next_statuses_for_role(current, role, previous_status=current)
