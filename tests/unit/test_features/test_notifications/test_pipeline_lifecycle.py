"""Unit tests for DispatchPipeline resend, migration, attachments and queries."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from dispatch_service.features.attachments import (
    AttachmentReference,
    AttachmentUpload,
    ReferencedFileNotFoundError,
    calculate_checksum,
)
from dispatch_service.features.notifications import (
    AttachmentsNotSupportedError,
    InMemoryNotificationBackend,
    NotificationBackend,
    NotificationNotFoundError,
    NotificationScheduledInFutureError,
    NotificationStatus,
    NotificationStatusConflictError,
    NotificationType,
    StoredContextMissingError,
)


@pytest.mark.unit
class TestResendNotification:
    """Test resend_notification."""

    @pytest.mark.asyncio
    async def test_resend_creates_new_record(
        self, make_pipeline, email_adapter, make_notification, backend, welcome_context
    ):
        """Test that a resend sends a copy and leaves the original untouched."""
        pipeline = make_pipeline([email_adapter])
        original = await pipeline.create_notification(make_notification())
        original_stored = await backend.get_notification(original.id)

        resent = await pipeline.resend_notification(original.id)

        assert resent.id != original.id
        assert resent.user_id == original.user_id
        assert resent.body_template == original.body_template
        assert resent.context_parameters == original.context_parameters
        new_stored = await backend.get_notification(resent.id)
        assert new_stored.status is NotificationStatus.SENT
        # Context was generated again
        assert welcome_context.calls == 2
        assert new_stored.context_used["call"] == 2
        assert await backend.get_notification(original.id) == original_stored

    @pytest.mark.asyncio
    async def test_resend_with_stored_context(
        self, make_pipeline, email_adapter, make_notification, backend, welcome_context
    ):
        pipeline = make_pipeline([email_adapter])
        original = await pipeline.create_notification(make_notification())
        original_context = (await backend.get_notification(original.id)).context_used

        resent = await pipeline.resend_notification(original.id, use_stored_context=True)

        assert welcome_context.calls == 1
        assert email_adapter.sent[-1][1] == original_context
        assert (await backend.get_notification(resent.id)).context_used == original_context

    @pytest.mark.asyncio
    async def test_resend_of_failed_notification(self, make_pipeline, make_adapter, make_notification, backend):
        flaky = make_adapter(fail={"1"})
        pipeline = make_pipeline([flaky])
        original = await pipeline.create_notification(make_notification())

        resent = await pipeline.resend_notification(original.id)

        assert (await backend.get_notification(original.id)).status is NotificationStatus.FAILED
        assert (await backend.get_notification(resent.id)).status is NotificationStatus.SENT

    @pytest.mark.asyncio
    async def test_missing_stored_context_strict(
        self, make_pipeline, email_adapter, make_notification, backend, strict_settings
    ):
        pipeline = make_pipeline([email_adapter], settings=strict_settings)
        stored = await backend.persist_notification(make_notification())

        with pytest.raises(StoredContextMissingError):
            await pipeline.resend_notification(stored.id, use_stored_context=True)

        assert len(await backend.get_notifications(0, 10)) == 1

    @pytest.mark.asyncio
    async def test_missing_stored_context_lenient(self, make_pipeline, email_adapter, make_notification, backend):
        pipeline = make_pipeline([email_adapter])
        stored = await backend.persist_notification(make_notification())

        assert await pipeline.resend_notification(stored.id, use_stored_context=True) is None
        assert email_adapter.sent == []

    @pytest.mark.asyncio
    async def test_future_notification_strict(
        self, make_pipeline, email_adapter, make_notification, backend, strict_settings
    ):
        pipeline = make_pipeline([email_adapter], settings=strict_settings)
        stored = await backend.persist_notification(
            make_notification(send_after=datetime.now(UTC) + timedelta(days=1))
        )

        with pytest.raises(NotificationScheduledInFutureError):
            await pipeline.resend_notification(stored.id)

    @pytest.mark.asyncio
    async def test_unknown_notification(self, make_pipeline, email_adapter, caplog):
        pipeline = make_pipeline([email_adapter])

        with caplog.at_level(logging.ERROR):
            assert await pipeline.resend_notification("404") is None

        assert "Notification 404 not found" in caplog.text

    @pytest.mark.asyncio
    async def test_unknown_notification_strict(self, make_pipeline, email_adapter, strict_settings):
        pipeline = make_pipeline([email_adapter], settings=strict_settings)

        with pytest.raises(NotificationNotFoundError):
            await pipeline.resend_notification("404")

    @pytest.mark.asyncio
    async def test_attachments_are_linked_by_reference(
        self, make_pipeline, email_adapter, make_notification, backend, attachment_store
    ):
        pipeline = make_pipeline([email_adapter], attachment_store=attachment_store)
        original = await pipeline.create_notification(
            make_notification(attachments=[AttachmentUpload(file=b"invoice", filename="invoice.pdf")])
        )

        resent = await pipeline.resend_notification(original.id)

        original_links = await backend.get_attachments(original.id)
        resent_links = await backend.get_attachments(resent.id)
        assert [link.file_id for link in resent_links] == [link.file_id for link in original_links]
        assert len(backend._files) == 1


@pytest.mark.unit
class TestMigrateToBackend:
    """Test migrate_to_backend."""

    @pytest.mark.asyncio
    async def test_copies_every_notification(self, make_pipeline, email_adapter, make_notification, backend):
        pipeline = make_pipeline([email_adapter])
        for index in range(5):
            await pipeline.create_notification(make_notification(title=f"n{index}"))
        destination = InMemoryNotificationBackend()

        total = await pipeline.migrate_to_backend(destination)

        assert total == 5
        copied = await destination.get_notifications(0, 10)
        assert sorted(n.title for n in copied) == ["n0", "n1", "n2", "n3", "n4"]
        assert all(n.status is NotificationStatus.SENT for n in copied)

    @pytest.mark.asyncio
    async def test_pages_with_batch_size(self, make_pipeline, make_notification, backend):
        pipeline = make_pipeline([])
        for _ in range(3):
            await backend.persist_notification(make_notification())
        destination = AsyncMock(spec=NotificationBackend)

        total = await pipeline.migrate_to_backend(destination, batch_size=2)

        assert total == 3
        batches = [call.args[0] for call in destination.bulk_persist_notifications.await_args_list]
        assert [len(batch) for batch in batches] == [2, 1]
        assert all(n.id is None for batch in batches for n in batch)

    @pytest.mark.asyncio
    async def test_empty_source(self, make_pipeline):
        assert await make_pipeline([]).migrate_to_backend(InMemoryNotificationBackend()) == 0


@pytest.mark.unit
class TestPipelineAttachments:
    """Test attachment handling in the pipeline."""

    @pytest.mark.asyncio
    async def test_adapter_receives_readable_attachments(
        self, make_pipeline, make_adapter, make_notification, attachment_store
    ):
        adapter = make_adapter(attachments=True)
        pipeline = make_pipeline([adapter], attachment_store=attachment_store)

        await pipeline.create_notification(
            make_notification(
                attachments=[AttachmentUpload(file=b"quarterly", filename="report.txt", description="Q3")]
            )
        )

        sent, _context = adapter.sent[0]
        [attachment] = sent.stored_attachments
        assert attachment.filename == "report.txt"
        assert attachment.content_type == "text/plain"
        assert attachment.description == "Q3"
        assert attachment.checksum == calculate_checksum(b"quarterly")
        assert await attachment.file.read() == b"quarterly"

    @pytest.mark.asyncio
    async def test_adapter_without_attachment_support_gets_none(
        self, make_pipeline, email_adapter, make_notification, attachment_store
    ):
        pipeline = make_pipeline([email_adapter], attachment_store=attachment_store)

        await pipeline.create_notification(
            make_notification(attachments=[AttachmentUpload(file=b"x", filename="x.bin")])
        )

        assert email_adapter.sent[0][0].stored_attachments == []

    @pytest.mark.asyncio
    async def test_identical_uploads_share_one_file(
        self, make_pipeline, email_adapter, make_notification, backend, attachment_store
    ):
        """Test content deduplication across notifications."""
        pipeline = make_pipeline([email_adapter], attachment_store=attachment_store)

        first = await pipeline.create_notification(
            make_notification(attachments=[AttachmentUpload(file=b"same", filename="a.txt")])
        )
        second = await pipeline.create_notification(
            make_notification(attachments=[AttachmentUpload(file=b"same", filename="b.txt")])
        )

        [first_link] = await backend.get_attachments(first.id)
        [second_link] = await backend.get_attachments(second.id)
        assert first_link.file_id == second_link.file_id
        assert len(list(attachment_store.base_directory.iterdir())) == 1

    @pytest.mark.asyncio
    async def test_reference_to_existing_file(
        self, make_pipeline, email_adapter, make_notification, backend, attachment_store
    ):
        pipeline = make_pipeline([email_adapter], attachment_store=attachment_store)
        record = await attachment_store.upload_file(b"terms", "terms.pdf")

        created = await pipeline.create_notification(
            make_notification(attachments=[AttachmentReference(file_id=record.id)])
        )

        [link] = await backend.get_attachments(created.id)
        assert link.file_id == record.id

    @pytest.mark.asyncio
    async def test_unknown_reference_persists_nothing(
        self, make_pipeline, email_adapter, make_notification, backend, attachment_store
    ):
        pipeline = make_pipeline([email_adapter], attachment_store=attachment_store)

        with pytest.raises(ReferencedFileNotFoundError):
            await pipeline.create_notification(
                make_notification(attachments=[AttachmentReference(file_id="missing")])
            )

        assert await backend.get_notifications(0, 10) == []
        assert email_adapter.sent == []

    @pytest.mark.asyncio
    async def test_attachments_without_store(self, make_pipeline, email_adapter, make_notification):
        pipeline = make_pipeline([email_adapter])

        with pytest.raises(AttachmentsNotSupportedError):
            await pipeline.create_notification(
                make_notification(attachments=[AttachmentUpload(file=b"x", filename="x.txt")])
            )

    @pytest.mark.asyncio
    async def test_attachments_without_capable_backend(
        self, make_pipeline, email_adapter, make_notification, tmp_path
    ):
        from dispatch_service.features.attachments import LocalFileAttachmentStore

        backend = AsyncMock(spec=NotificationBackend)
        pipeline = make_pipeline(
            [email_adapter],
            backend=backend,
            attachment_store=LocalFileAttachmentStore(tmp_path),
        )

        with pytest.raises(AttachmentsNotSupportedError):
            await pipeline.create_notification(
                make_notification(attachments=[AttachmentUpload(file=b"x", filename="x.txt")])
            )

        backend.persist_notification.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_is_bound_to_pipeline_backend(self, make_pipeline, backend, tmp_path):
        from dispatch_service.features.attachments import LocalFileAttachmentStore

        store = LocalFileAttachmentStore(tmp_path)
        make_pipeline([], attachment_store=store)

        assert store.backend is backend

    @pytest.mark.asyncio
    async def test_unlink_and_clean_up_orphans(
        self, make_pipeline, email_adapter, make_notification, attachment_store
    ):
        pipeline = make_pipeline([email_adapter], attachment_store=attachment_store)
        created = await pipeline.create_notification(
            make_notification(attachments=[AttachmentUpload(file=b"temp", filename="temp.txt")])
        )
        [attachment] = await pipeline.get_attachments(created.id)
        assert await pipeline.get_orphaned_attachment_files() == []

        await pipeline.delete_notification_attachment(created.id, attachment.id)

        orphans = await pipeline.get_orphaned_attachment_files()
        assert [o.id for o in orphans] == [attachment.file_id]
        assert await pipeline.delete_orphaned_attachment_files() == [attachment.file_id]
        assert list(attachment_store.base_directory.iterdir()) == []
        assert await pipeline.get_attachments(created.id) == []


@pytest.mark.unit
class TestPipelineQueries:
    """Test the read and state-change pass-throughs."""

    @pytest.mark.asyncio
    async def test_in_app_read_flow(self, make_pipeline, make_adapter, make_notification):
        pipeline = make_pipeline([make_adapter(NotificationType.IN_APP, key="in_app")])
        created = await pipeline.create_notification(make_notification(notification_type=NotificationType.IN_APP))

        unread = await pipeline.get_in_app_unread("user-1")
        assert [n.id for n in unread] == [created.id]
        assert [n.id for n in await pipeline.get_in_app_unread("user-1", page=0, page_size=1)] == [created.id]

        read = await pipeline.mark_read(created.id)

        assert read.status is NotificationStatus.READ
        assert read.read_at is not None
        assert await pipeline.get_in_app_unread("user-1") == []

    @pytest.mark.asyncio
    async def test_mark_read_requires_sent(self, make_pipeline, make_notification, backend):
        pipeline = make_pipeline([])
        stored = await backend.persist_notification(make_notification(notification_type=NotificationType.IN_APP))

        with pytest.raises(NotificationStatusConflictError):
            await pipeline.mark_read(stored.id)

        assert (await pipeline.mark_read(stored.id, check_is_sent=False)).status is NotificationStatus.READ

    @pytest.mark.asyncio
    async def test_cancel_scheduled_notification(self, make_pipeline, email_adapter, make_notification):
        pipeline = make_pipeline([email_adapter])
        created = await pipeline.create_notification(
            make_notification(send_after=datetime.now(UTC) + timedelta(hours=1))
        )

        await pipeline.cancel_notification(created.id)

        assert (await pipeline.get_notification(created.id)).status is NotificationStatus.CANCELLED
        assert await pipeline.get_all_future_notifications() == []
        assert await pipeline.send_pending_notifications() == 0

    @pytest.mark.asyncio
    async def test_future_queries(self, make_pipeline, make_notification, make_one_off, backend):
        pipeline = make_pipeline([])
        later = datetime.now(UTC) + timedelta(hours=1)
        mine = await backend.persist_notification(make_notification(send_after=later))
        await backend.persist_notification(make_notification(user_id="user-2", send_after=later))
        await backend.persist_notification(make_one_off(send_after=later))
        await backend.persist_notification(make_notification())

        assert len(await pipeline.get_all_future_notifications()) == 3
        assert len(await pipeline.get_future_notifications(page=1, page_size=2)) == 1
        assert [n.id for n in await pipeline.get_all_future_notifications_from_user("user-1")] == [mine.id]
        assert await pipeline.get_future_notifications_from_user("user-1", 1, 10) == []
        assert len(await pipeline.get_pending_notifications(0, 10)) == 1

    @pytest.mark.asyncio
    async def test_update_notification(self, make_pipeline, make_notification, backend):
        pipeline = make_pipeline([])
        stored = await backend.persist_notification(make_notification())

        updated = await pipeline.update_notification(stored.id, {"title": "Renamed"})

        assert updated.title == "Renamed"
        assert (await pipeline.get_notification(stored.id, for_update=True)).title == "Renamed"

    @pytest.mark.asyncio
    async def test_get_notification_context(self, make_pipeline, welcome_context):
        pipeline = make_pipeline([])

        context = await pipeline.get_notification_context("welcome", {"plan": "free"})

        assert context["plan"] == "free"
        assert welcome_context.calls == 1
