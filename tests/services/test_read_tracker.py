"""Tests for ReadTracker."""

import pytest
from sqlalchemy.exc import OperationalError

from brokerdesk.models import AnnouncementStatus
from brokerdesk.repositories.announcement_repo import AnnouncementRepository
from brokerdesk.services.badge import UnreadBadgeService
from brokerdesk.services.errors import NotFoundError, TransientCollaboratorError
from brokerdesk.services.read_tracker import ReadTracker


class TestReadTracker:
    """Idempotent read marking."""

    def test_first_read_flips_flag_and_stamps_time(self, db_session, make_announcement, broker_user):
        announcement = make_announcement()
        tracker = ReadTracker(db_session)

        assert tracker.mark_read(broker_user.id, announcement.id) is True

        db_session.expire_all()
        receipt = AnnouncementRepository(db_session).get_receipt(broker_user.id, announcement.id)
        assert receipt.is_read is True
        assert receipt.read_at is not None

    def test_second_read_keeps_original_timestamp(self, db_session, make_announcement, broker_user):
        announcement = make_announcement()
        tracker = ReadTracker(db_session)
        repo = AnnouncementRepository(db_session)

        tracker.mark_read(broker_user.id, announcement.id)
        db_session.expire_all()
        first_read_at = repo.get_receipt(broker_user.id, announcement.id).read_at

        assert tracker.mark_read(broker_user.id, announcement.id) is False

        db_session.expire_all()
        assert repo.get_receipt(broker_user.id, announcement.id).read_at == first_read_at

    def test_non_recipient_raises_not_found(self, db_session, make_announcement, admin_user):
        announcement = make_announcement()
        tracker = ReadTracker(db_session)

        with pytest.raises(NotFoundError):
            tracker.mark_read(admin_user.id, announcement.id)

    def test_reading_decrements_badge(self, db_session, make_announcement, broker_user):
        first = make_announcement(title="First")
        make_announcement(title="Second")
        badge = UnreadBadgeService(db_session)
        assert badge.count(broker_user.id) == 2

        ReadTracker(db_session).mark_read(broker_user.id, first.id)

        assert badge.count(broker_user.id) == 1

    def test_read_is_tracked_on_archived_announcement(self, db_session, store, make_announcement, broker_user):
        announcement = make_announcement()
        store.archive(announcement.id)

        assert ReadTracker(db_session).mark_read(broker_user.id, announcement.id) is True
        assert store.get_announcement(announcement.id).status == AnnouncementStatus.ARCHIVED

    def test_storage_outage_is_transient_and_rolled_back(
        self, db_session, make_announcement, broker_user, mocker
    ):
        announcement = make_announcement()
        tracker = ReadTracker(db_session)
        mocker.patch.object(
            tracker.repo,
            "mark_receipt_read",
            side_effect=TransientCollaboratorError("Receipt storage is temporarily unavailable"),
        )
        rollback = mocker.spy(db_session, "rollback")

        with pytest.raises(TransientCollaboratorError):
            tracker.mark_read(broker_user.id, announcement.id)

        rollback.assert_called_once()
        assert UnreadBadgeService(db_session).count(broker_user.id) == 1

    def test_update_failure_maps_to_transient(self, db_session, make_announcement, broker_user, mocker):
        announcement = make_announcement()
        repo = AnnouncementRepository(db_session)
        mocker.patch.object(
            db_session,
            "execute",
            side_effect=OperationalError("UPDATE", {}, Exception("conn lost")),
        )

        with pytest.raises(TransientCollaboratorError):
            repo.mark_receipt_read(broker_user.id, announcement.id, read_at=None)
