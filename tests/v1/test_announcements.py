"""Tests for the announcement endpoints."""

from fastapi import status
from sqlalchemy.exc import OperationalError

from brokerdesk.models import AnnouncementPriority, AnnouncementStatus, Role
from brokerdesk.services.errors import TransientCollaboratorError

BASE = "/api/v1/announcements"


def _create_payload(**overrides):
    payload = {
        "title": "Compliance update",
        "body": "Please review the new KYC checklist.",
        "priority": "high",
        "status": "published",
        "target_roles": ["broker"],
    }
    payload.update(overrides)
    return payload


class TestCreateAnnouncement:
    """POST /announcements/"""

    def test_create_published_announcement(self, client, admin_headers, broker_user, broker_headers):
        r = client.post(f"{BASE}/", json=_create_payload(), headers=admin_headers)

        assert r.status_code == status.HTTP_201_CREATED
        body = r.json()
        assert body["status"] == "published"
        assert body["target_roles"] == ["broker"]
        assert body["published_at"] is not None

        badge = client.get(f"{BASE}/unread-count", headers=broker_headers)
        assert badge.json() == {"unread": 1}

    def test_blank_title_is_unprocessable(self, client, admin_headers):
        r = client.post(f"{BASE}/", json=_create_payload(title="  "), headers=admin_headers)

        assert r.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert "title" in r.json()["detail"]

    def test_missing_roles_is_unprocessable(self, client, admin_headers):
        r = client.post(f"{BASE}/", json=_create_payload(target_roles=[]), headers=admin_headers)

        assert r.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_unknown_role_is_unprocessable(self, client, admin_headers):
        r = client.post(f"{BASE}/", json=_create_payload(target_roles=["ceo"]), headers=admin_headers)

        assert r.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_requires_authentication(self, client):
        r = client.post(f"{BASE}/", json=_create_payload())

        assert r.status_code in {status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN}

    def test_directory_outage_maps_to_503(self, client, admin_headers, mocker):
        mocker.patch(
            "brokerdesk.services.role_resolver.RoleTargetResolver.resolve",
            side_effect=TransientCollaboratorError("directory down"),
        )

        r = client.post(f"{BASE}/", json=_create_payload(), headers=admin_headers)

        assert r.status_code == status.HTTP_503_SERVICE_UNAVAILABLE


class TestListAnnouncements:
    """GET /announcements/"""

    def test_list_with_filters_and_read_state(self, client, make_announcement, broker_user, broker_headers):
        make_announcement(title="Low one", priority=AnnouncementPriority.LOW)
        high = make_announcement(title="High one", priority=AnnouncementPriority.HIGH)

        r = client.get(f"{BASE}/", params={"priority": "high"}, headers=broker_headers)

        assert r.status_code == status.HTTP_200_OK
        body = r.json()
        assert body["total"] == 1
        assert body["has_more"] is False
        assert body["announcements"][0]["id"] == high.id
        assert body["announcements"][0]["is_read"] is False

    def test_status_filter_uses_status_param(self, client, make_announcement, broker_headers):
        make_announcement(title="Draft", status=AnnouncementStatus.DRAFT)
        make_announcement(title="Live")

        r = client.get(f"{BASE}/", params={"status": "draft"}, headers=broker_headers)

        assert [a["title"] for a in r.json()["announcements"]] == ["Draft"]

    def test_limit_above_maximum_is_rejected(self, client, broker_headers):
        r = client.get(f"{BASE}/", params={"limit": 1000}, headers=broker_headers)

        assert r.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestAnnouncementDetail:
    """GET/PATCH/DELETE /announcements/{id}"""

    def test_viewing_marks_as_read(self, client, make_announcement, broker_user, broker_headers):
        announcement = make_announcement()

        r = client.get(f"{BASE}/{announcement.id}", headers=broker_headers)

        assert r.status_code == status.HTTP_200_OK
        body = r.json()
        assert body["is_read"] is True
        assert body["announcement"]["id"] == announcement.id
        assert [role["role"] for role in body["roles"]] == ["broker"]
        receipt = next(rc for rc in body["recipients"] if rc["user_id"] == broker_user.id)
        assert receipt["is_read"] is True
        assert client.get(f"{BASE}/unread-count", headers=broker_headers).json() == {"unread": 0}

    def test_viewing_outside_audience_is_untracked(self, client, make_announcement, admin_headers):
        announcement = make_announcement()

        r = client.get(f"{BASE}/{announcement.id}", headers=admin_headers)

        assert r.status_code == status.HTTP_200_OK
        assert r.json()["is_read"] is False

    def test_unknown_announcement_is_404(self, client, broker_headers):
        r = client.get(f"{BASE}/9999", headers=broker_headers)

        assert r.status_code == status.HTTP_404_NOT_FOUND

    def test_patch_replaces_roles(self, client, make_announcement, admin_headers, admin_user):
        announcement = make_announcement(status=AnnouncementStatus.DRAFT)

        r = client.patch(
            f"{BASE}/{announcement.id}",
            json={"title": "Edited", "target_roles": ["admin", "admin_comercial"]},
            headers=admin_headers,
        )

        assert r.status_code == status.HTTP_200_OK
        assert r.json()["title"] == "Edited"
        assert r.json()["target_roles"] == ["admin", "admin_comercial"]

    def test_patch_unknown_is_404(self, client, admin_headers):
        r = client.patch(f"{BASE}/4242", json={"title": "x"}, headers=admin_headers)

        assert r.status_code == status.HTTP_404_NOT_FOUND

    def test_view_during_receipt_outage_is_untracked(self, client, make_announcement, broker_headers, mocker):
        announcement = make_announcement()
        mocker.patch(
            "brokerdesk.services.read_tracker.ReadTracker.mark_read",
            side_effect=TransientCollaboratorError("Receipt storage is temporarily unavailable"),
        )

        r = client.get(f"{BASE}/{announcement.id}", headers=broker_headers)

        assert r.status_code == status.HTTP_200_OK
        assert r.json()["is_read"] is False

    def test_delete(self, client, make_announcement, admin_headers):
        announcement = make_announcement()

        r = client.delete(f"{BASE}/{announcement.id}", headers=admin_headers)

        assert r.status_code == status.HTTP_204_NO_CONTENT
        assert client.get(f"{BASE}/{announcement.id}", headers=admin_headers).status_code == 404


class TestLifecycleActions:
    """Publish, archive and read actions."""

    def test_publish_then_archive(self, client, make_announcement, admin_headers, broker_user, broker_headers):
        announcement = make_announcement(status=AnnouncementStatus.DRAFT)

        published = client.post(f"{BASE}/{announcement.id}/publish", headers=admin_headers)
        assert published.status_code == status.HTTP_200_OK
        assert published.json()["status"] == "published"
        assert client.get(f"{BASE}/unread-count", headers=broker_headers).json() == {"unread": 1}

        archived = client.post(f"{BASE}/{announcement.id}/archive", headers=admin_headers)
        assert archived.json()["status"] == "archived"
        assert client.get(f"{BASE}/unread-count", headers=broker_headers).json() == {"unread": 0}

    def test_mark_read_returns_refreshed_badge(
        self, client, make_announcement, broker_user, broker_headers
    ):
        first = make_announcement(title="First")
        make_announcement(title="Second")

        r = client.post(f"{BASE}/{first.id}/read", headers=broker_headers)
        again = client.post(f"{BASE}/{first.id}/read", headers=broker_headers)

        assert r.json() == {"tracked": True, "unread": 1}
        assert again.json() == {"tracked": True, "unread": 1}

    def test_mark_read_by_non_recipient_is_untracked(self, client, make_announcement, admin_headers):
        announcement = make_announcement(target_roles=[Role.BROKER])

        r = client.post(f"{BASE}/{announcement.id}/read", headers=admin_headers)

        assert r.status_code == status.HTTP_200_OK
        assert r.json() == {"tracked": False, "unread": 0}

    def test_mark_read_unknown_is_404(self, client, broker_headers):
        r = client.post(f"{BASE}/555/read", headers=broker_headers)

        assert r.status_code == status.HTTP_404_NOT_FOUND

    def test_publish_during_receipt_outage_maps_to_503(
        self, client, make_announcement, admin_headers, broker_user, broker_headers, mocker
    ):
        draft = make_announcement(status=AnnouncementStatus.DRAFT)
        mocker.patch(
            "brokerdesk.repositories.announcement_repo.AnnouncementRepository.insert_receipt_if_absent",
            side_effect=OperationalError("INSERT", {}, Exception("conn lost")),
        )

        r = client.post(f"{BASE}/{draft.id}/publish", headers=admin_headers)

        assert r.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        mocker.stopall()
        assert client.get(f"{BASE}/unread-count", headers=broker_headers).json() == {"unread": 0}

    def test_read_during_receipt_outage_maps_to_503(self, client, make_announcement, broker_headers, mocker):
        announcement = make_announcement()
        mocker.patch(
            "brokerdesk.services.read_tracker.ReadTracker.mark_read",
            side_effect=TransientCollaboratorError("Receipt storage is temporarily unavailable"),
        )

        r = client.post(f"{BASE}/{announcement.id}/read", headers=broker_headers)

        assert r.status_code == status.HTTP_503_SERVICE_UNAVAILABLE

class TestAggregates:
    """Stats and dashboard views."""

    def test_stats(self, client, make_announcement, broker_headers, broker_user):
        make_announcement(priority=AnnouncementPriority.HIGH)
        make_announcement(status=AnnouncementStatus.DRAFT)

        r = client.get(f"{BASE}/stats", headers=broker_headers)

        assert r.status_code == status.HTTP_200_OK
        body = r.json()
        assert body["total"] == 2
        assert body["published"] == 1
        assert body["draft"] == 1
        assert body["unread"] == 1
        assert body["by_priority"] == {"low": 0, "medium": 1, "high": 1}

    def test_dashboard(self, client, make_announcement, broker_headers, broker_user):
        make_announcement(title="Urgent", priority=AnnouncementPriority.HIGH)

        r = client.get(f"{BASE}/dashboard", headers=broker_headers)

        body = r.json()
        assert body["unread_count"] == 1
        assert body["urgent_count"] == 1
        assert body["total_published"] == 1
        assert [a["title"] for a in body["recent"]] == ["Urgent"]
