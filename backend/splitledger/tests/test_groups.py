"""
Tests for the group membership manager.
"""
import logging
import pytest
from decimal import Decimal
from sqlalchemy.exc import OperationalError

from splitledger.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from splitledger.models.activity_log import ActivityLog, ActivityType
from splitledger.models.expense import Expense
from splitledger.models.group import Group, MemberRole
from splitledger.models.settlement import Settlement
from splitledger.services import group_service
from splitledger.services.ledger_service import compute_group_ledger


def admins(group):
    return [m.user_id for m in group.members if m.role == MemberRole.ADMIN]


def member_ids(group):
    return [m.user_id for m in group.members]


class TestCreateGroup:
    """Tests for group creation."""

    def test_creator_is_admin(self, db, alice, bob, carol):
        group = group_service.create_group(db, alice.id, "  Flat  ", None, [bob.id, carol.id, bob.id])

        assert group.name == "Flat"
        assert member_ids(group) == [alice.id, bob.id, carol.id]
        assert admins(group) == [alice.id]

        log = db.query(ActivityLog).filter(ActivityLog.group_id == group.id).one()
        assert log.type == ActivityType.GROUP_CREATED
        assert log.details == {"member_count": 3}

    def test_empty_name_rejected(self, db, alice):
        with pytest.raises(ValidationError):
            group_service.create_group(db, alice.id, "   ")

    def test_unknown_member_rejected(self, db, alice):
        with pytest.raises(NotFoundError):
            group_service.create_group(db, alice.id, "Flat", None, [404])
        assert db.query(Group).count() == 0


class TestAddMembers:
    """Tests for adding members."""

    def test_single_member_added(self, db, alice, bob, make_group):
        group = make_group(alice)

        result = group_service.add_members(db, group.id, alice.id, [bob.id])

        assert result.added_count == 1
        assert member_ids(group) == [alice.id, bob.id]
        member = group.get_member(bob.id)
        assert member.role == MemberRole.MEMBER
        assert member.added_by == alice.id

        log = db.query(ActivityLog).filter(ActivityLog.type == ActivityType.MEMBER_ADDED).one()
        assert log.target_user_id == bob.id
        assert log.details == {"member_count": 2, "added_count": 1}

        [notification] = result.notifications
        assert notification.recipient_id == bob.id
        assert notification.group_name == group.name
        assert notification.inviter_name == "Alice"

    def test_bulk_add_skips_existing(self, db, alice, bob, carol, make_user, make_group):
        dave = make_user("Dave")
        group = make_group(alice, bob)

        result = group_service.add_members(db, group.id, alice.id, [bob.id, carol.id, dave.id, carol.id])

        assert result.added_count == 2
        assert len(result.notifications) == 2
        log = db.query(ActivityLog).filter(ActivityLog.type == ActivityType.MEMBERS_ADDED_BULK).one()
        assert log.target_user_ids == [carol.id, dave.id]
        assert log.target_user_id is None
        assert log.details["member_count"] == 4

    def test_all_existing_rejected(self, db, alice, bob, make_group):
        group = make_group(alice, bob)
        with pytest.raises(ValidationError) as exc:
            group_service.add_members(db, group.id, alice.id, [alice.id, bob.id])
        assert exc.value.code == "ALREADY_MEMBERS"

    def test_unknown_user_rejected(self, db, alice, bob, make_group):
        group = make_group(alice)
        with pytest.raises(NotFoundError):
            group_service.add_members(db, group.id, alice.id, [bob.id, 999])
        db.refresh(group)
        assert member_ids(group) == [alice.id]

    def test_non_admin_rejected(self, db, alice, bob, carol, make_group):
        group = make_group(alice, bob)
        with pytest.raises(AuthorizationError) as exc:
            group_service.add_members(db, group.id, bob.id, [carol.id])
        assert exc.value.code == "NOT_ADMIN"


class TestRemoveMember:
    """Tests for member removal and its cascade."""

    def test_remove_drops_split(self, db, alice, bob, carol, make_group, make_expense):
        group = make_group(alice, bob, carol)
        expense = make_expense(alice, 90, {alice: 30, bob: 30, carol: 30}, group=group)

        group_service.remove_member(db, group.id, alice.id, bob.id)

        db.refresh(group)
        assert member_ids(group) == [alice.id, carol.id]
        db.refresh(expense)
        assert [s.user_id for s in expense.splits] == [alice.id, carol.id]
        log = db.query(ActivityLog).filter(ActivityLog.type == ActivityType.MEMBER_REMOVED).one()
        assert log.target_user_id == bob.id
        assert log.details == {"member_count": 2}

    def test_expense_with_only_removed_member_deleted(self, db, alice, bob, carol, make_group, make_expense):
        group = make_group(alice, bob, carol)
        make_expense(carol, 20, [(bob, 20, False)], group=group)

        group_service.remove_member(db, group.id, alice.id, bob.id)

        assert db.query(Expense).filter(Expense.group_id == group.id).count() == 0

    def test_payer_reassigned(self, db, alice, bob, carol, make_group, make_expense):
        group = make_group(alice, bob, carol)
        expense = make_expense(bob, 90, {bob: 30, alice: 30, carol: 30}, group=group)

        group_service.remove_member(db, group.id, alice.id, bob.id)

        db.refresh(expense)
        assert expense.paid_by_user_id == alice.id
        assert [(s.user_id, s.paid) for s in expense.splits] == [(alice.id, True), (carol.id, False)]

    def test_settlements_involving_member_deleted(self, db, alice, bob, carol, make_group, make_expense, make_settlement):
        group = make_group(alice, bob, carol)
        make_expense(alice, 90, {alice: 30, bob: 30, carol: 30}, group=group)
        make_settlement(bob, alice, 10, group=group)
        kept = make_settlement(carol, alice, 10, group=group)

        group_service.remove_member(db, group.id, alice.id, bob.id)

        assert [s.id for s in db.query(Settlement).all()] == [kept.id]

    def test_failed_cascade_keeps_membership_change(self, db, monkeypatch, caplog, alice, bob, carol, make_group, make_expense):
        group = make_group(alice, bob, carol)
        expense = make_expense(alice, 90, {alice: 30, bob: 30, carol: 30}, group=group)

        def broken_lookup(session, group_id):
            raise OperationalError("SELECT expenses", {}, Exception("connection lost"))

        monkeypatch.setattr(group_service, "get_group_expenses", broken_lookup)

        with caplog.at_level(logging.ERROR, logger="splitledger.services.group_service"):
            group_service.remove_member(db, group.id, alice.id, bob.id)

        db.refresh(group)
        assert member_ids(group) == [alice.id, carol.id]
        log = db.query(ActivityLog).filter(ActivityLog.type == ActivityType.MEMBER_REMOVED).one()
        assert log.target_user_id == bob.id
        db.refresh(expense)
        assert [s.user_id for s in expense.splits] == [alice.id, bob.id, carol.id]
        assert "Cascade cleanup failed" in caplog.text

    def test_self_removal_rejected(self, db, alice, bob, make_group):
        group = make_group(alice, bob)
        with pytest.raises(ValidationError) as exc:
            group_service.remove_member(db, group.id, alice.id, alice.id)
        assert "Leave Group" in exc.value.message

    def test_non_member_rejected(self, db, alice, bob, carol, make_group):
        group = make_group(alice, bob)
        with pytest.raises(NotFoundError):
            group_service.remove_member(db, group.id, alice.id, carol.id)

    def test_non_admin_rejected(self, db, alice, bob, carol, make_group):
        group = make_group(alice, bob, carol)
        with pytest.raises(AuthorizationError):
            group_service.remove_member(db, group.id, bob.id, carol.id)

    def test_missing_group(self, db, alice):
        with pytest.raises(NotFoundError) as exc:
            group_service.remove_member(db, 12345, alice.id, alice.id)
        assert exc.value.code == "GROUP_NOT_FOUND"


class TestTransferAdmin:
    """Tests for admin transfer."""

    def test_single_admin_after_transfer(self, db, alice, bob, carol, make_group):
        group = make_group(alice, bob, carol)

        group_service.transfer_admin(db, group.id, alice.id, carol.id)

        db.refresh(group)
        assert admins(group) == [carol.id]
        log = db.query(ActivityLog).filter(ActivityLog.type == ActivityType.ADMIN_TRANSFERRED).one()
        assert log.performed_by == alice.id
        assert log.target_user_id == carol.id

    def test_self_transfer_rejected(self, db, alice, bob, make_group):
        group = make_group(alice, bob)
        with pytest.raises(ValidationError):
            group_service.transfer_admin(db, group.id, alice.id, alice.id)

    def test_target_must_be_member(self, db, alice, bob, carol, make_group):
        group = make_group(alice, bob)
        with pytest.raises(NotFoundError):
            group_service.transfer_admin(db, group.id, alice.id, carol.id)

    def test_non_admin_rejected(self, db, alice, bob, make_group):
        group = make_group(alice, bob)
        with pytest.raises(AuthorizationError):
            group_service.transfer_admin(db, group.id, bob.id, bob.id)


class TestLeaveGroup:
    """Tests for leaving a group."""

    def test_admin_must_name_new_admin(self, db, alice, bob, carol, make_group):
        group = make_group(alice, bob, carol)

        with pytest.raises(ValidationError) as exc:
            group_service.leave_group(db, group.id, alice.id)
        assert exc.value.code == "NEW_ADMIN_REQUIRED"

        deleted = group_service.leave_group(db, group.id, alice.id, new_admin_id=carol.id)

        assert deleted is False
        db.refresh(group)
        assert member_ids(group) == [bob.id, carol.id]
        assert admins(group) == [carol.id]

    def test_invalid_new_admin(self, db, alice, bob, carol, make_group):
        group = make_group(alice, bob)
        with pytest.raises(ValidationError) as exc:
            group_service.leave_group(db, group.id, alice.id, new_admin_id=carol.id)
        assert exc.value.code == "INVALID_NEW_ADMIN"
        with pytest.raises(ValidationError):
            group_service.leave_group(db, group.id, alice.id, new_admin_id=alice.id)

    def test_member_leaves_with_cascade(self, db, alice, bob, carol, make_group, make_expense):
        group = make_group(alice, bob, carol)
        expense = make_expense(bob, 60, {bob: 20, alice: 20, carol: 20}, group=group)

        group_service.leave_group(db, group.id, bob.id)

        db.refresh(group)
        assert member_ids(group) == [alice.id, carol.id]
        assert admins(group) == [alice.id]
        db.refresh(expense)
        assert expense.paid_by_user_id == alice.id
        assert [s.user_id for s in expense.splits] == [alice.id, carol.id]

    def test_not_a_member(self, db, alice, bob, carol, make_group):
        group = make_group(alice, bob)
        with pytest.raises(AuthorizationError):
            group_service.leave_group(db, group.id, carol.id)

    def test_last_member_deletes_group(self, db, alice, bob, make_group, make_expense, make_settlement):
        group = make_group(alice, bob)
        make_expense(alice, 40, {alice: 20, bob: 20}, group=group)
        make_settlement(bob, alice, 20, group=group)
        group_id = group.id

        group_service.leave_group(db, group_id, bob.id)
        deleted = group_service.leave_group(db, group_id, alice.id)

        assert deleted is True
        assert db.query(Group).filter(Group.id == group_id).first() is None
        assert db.query(Expense).filter(Expense.group_id == group_id).count() == 0
        assert db.query(Settlement).filter(Settlement.group_id == group_id).count() == 0
        assert db.query(ActivityLog).filter(ActivityLog.group_id == group_id).count() == 0


class TestDeleteGroup:
    """Tests for group deletion."""

    def test_admin_deletes_everything(self, db, alice, bob, make_group, make_expense, make_settlement):
        group = make_group(alice, bob)
        make_expense(alice, 40, {alice: 20, bob: 20}, group=group)
        make_settlement(bob, alice, 5, group=group)
        group_id = group.id

        group_service.delete_group(db, group_id, alice.id)

        assert db.query(Group).count() == 0
        assert db.query(Expense).count() == 0
        assert db.query(Settlement).count() == 0
        assert db.query(ActivityLog).count() == 0

    def test_non_admin_rejected(self, db, alice, bob, make_group):
        group = make_group(alice, bob)
        with pytest.raises(AuthorizationError):
            group_service.delete_group(db, group.id, bob.id)
        assert db.query(Group).count() == 1


class TestGroupLedger:
    """Tests for the group ledger read model."""

    def test_equal_split_balances(self, db, alice, bob, carol, make_group, make_expense):
        group = make_group(alice, bob, carol)
        make_expense(alice, 90, {alice: 30, bob: 30, carol: 30}, group=group)

        ledger = compute_group_ledger(group.id, bob.id, db)

        totals = {b.id: b.total_balance for b in ledger.balances}
        assert totals == {alice.id: Decimal("60"), bob.id: Decimal("-30"), carol.id: Decimal("-30")}
        by_id = {b.id: b for b in ledger.balances}
        assert [(d.to_user_id, d.amount) for d in by_id[bob.id].owes] == [(alice.id, Decimal("30"))]
        assert sorted(d.from_user_id for d in by_id[alice.id].owed_by) == [bob.id, carol.id]
        assert len(ledger.expenses) == 1

    def test_non_member_rejected(self, db, alice, bob, carol, make_group):
        group = make_group(alice, bob)
        with pytest.raises(AuthorizationError) as exc:
            compute_group_ledger(group.id, carol.id, db)
        assert exc.value.code == "NOT_MEMBER"

    def test_missing_group(self, db, alice):
        with pytest.raises(NotFoundError) as exc:
            compute_group_ledger(777, alice.id, db)
        assert exc.value.code == "GROUP_NOT_FOUND"


class TestActivityAndListing:
    """Tests for the activity log and group list."""

    def test_activity_newest_first(self, db, alice, bob, carol, make_group):
        group = make_group(alice, bob)
        group_service.add_members(db, group.id, alice.id, [carol.id])

        entries = group_service.get_activity_log(db, group.id, bob.id)

        assert [e.type for e in entries] == [ActivityType.MEMBER_ADDED, ActivityType.GROUP_CREATED]
        assert entries[0].performer.id == alice.id
        assert entries[0].target_user.id == carol.id

    def test_activity_hidden_from_non_members(self, db, alice, bob, make_group):
        group = make_group(alice)
        assert group_service.get_activity_log(db, group.id, bob.id) == []
        assert group_service.get_activity_log(db, 999, alice.id) == []

    def test_list_groups_with_balance(self, db, alice, bob, carol, make_group, make_expense):
        trip = make_group(alice, bob, name="Trip")
        make_group(carol, name="Other")
        make_expense(alice, 40, {alice: 20, bob: 20}, group=trip)

        items = group_service.list_user_groups(db, bob.id)

        assert [(i.name, i.member_count, i.balance) for i in items] == [("Trip", 2, Decimal("-20"))]


class TestGroupRoutes:
    """API tests for /api/groups."""

    def test_create_and_list(self, client, alice, bob, auth_headers):
        resp = client.post(
            "/api/groups",
            json={"name": "Flat", "member_ids": [bob.id]},
            headers=auth_headers(alice),
        )
        assert resp.status_code == 201
        assert resp.json()["name"] == "Flat"

        listed = client.get("/api/groups", headers=auth_headers(bob)).json()
        assert [g["name"] for g in listed] == ["Flat"]
        assert Decimal(listed[0]["balance"]) == 0

    def test_add_members_dispatches_invites(self, client, monkeypatch, alice, bob, carol, make_group, auth_headers):
        sent = []
        monkeypatch.setattr(
            "splitledger.api.routes.groups.send_group_invite_notification",
            lambda notification: sent.append(notification),
        )
        group = make_group(alice)

        resp = client.post(
            f"/api/groups/{group.id}/members",
            json={"new_member_ids": [bob.id, carol.id]},
            headers=auth_headers(alice),
        )

        assert resp.status_code == 200
        assert resp.json()["added_count"] == 2
        assert sorted(n.recipient_id for n in sent) == [bob.id, carol.id]

    def test_add_members_forbidden_for_non_admin(self, client, alice, bob, carol, make_group, auth_headers):
        group = make_group(alice, bob)
        resp = client.post(
            f"/api/groups/{group.id}/members",
            json={"new_member_ids": [carol.id]},
            headers=auth_headers(bob),
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == "NOT_ADMIN"

    def test_leave_without_body(self, client, alice, bob, make_group, auth_headers):
        group = make_group(alice, bob)
        resp = client.post(f"/api/groups/{group.id}/leave", headers=auth_headers(bob))
        assert resp.status_code == 200
        assert resp.json()["success"] is True

    def test_admin_leave_requires_new_admin(self, client, alice, bob, make_group, auth_headers):
        group = make_group(alice, bob)

        resp = client.post(f"/api/groups/{group.id}/leave", json={}, headers=auth_headers(alice))
        assert resp.status_code == 400
        assert resp.json()["code"] == "NEW_ADMIN_REQUIRED"

        resp = client.post(
            f"/api/groups/{group.id}/leave",
            json={"new_admin_id": bob.id},
            headers=auth_headers(alice),
        )
        assert resp.status_code == 200

    def test_ledger_for_non_member(self, client, alice, bob, carol, make_group, auth_headers):
        group = make_group(alice, bob)
        resp = client.get(f"/api/groups/{group.id}/ledger", headers=auth_headers(carol))
        assert resp.status_code == 403

    def test_remove_and_delete(self, client, alice, bob, make_group, auth_headers):
        group = make_group(alice, bob)

        resp = client.delete(f"/api/groups/{group.id}/members/{bob.id}", headers=auth_headers(alice))
        assert resp.status_code == 200

        resp = client.delete(f"/api/groups/{group.id}", headers=auth_headers(alice))
        assert resp.status_code == 200

        resp = client.get(f"/api/groups/{group.id}/activity", headers=auth_headers(alice))
        assert resp.json() == []
