"""Unit tests for search column maintenance tasks."""

from unittest.mock import patch


def _batch(processed: int, updated: int, last_id: int) -> dict:
    return {"processed": processed, "updated": updated, "last_id": last_id}


class TestReindexMessagesTask:
    """Tests for the index.reindex_messages task."""

    def test_task_is_registered_and_scheduled(self, mock_celery_app):
        """Task should be registered and run nightly."""
        from planet_worker.tasks.index import reindex_messages

        assert reindex_messages.name == "index.reindex_messages"
        schedule = mock_celery_app.conf.beat_schedule["nightly-search-reindex"]
        assert schedule["task"] == "index.reindex_messages"
        assert schedule["kwargs"]["max_batches"] > 0

    def test_runs_batches_until_done(self, mock_celery_app, mock_db_session, mock_session_factory):
        """Each batch is committed and the totals are summed."""
        from planet_worker.tasks.index import reindex_messages

        with patch(
            "planet_core.infra.db.get_sync_session_factory",
            return_value=mock_session_factory,
        ), patch(
            "planet_core.domain.services.search.SearchIndexCoordinator"
        ) as coordinator_cls:
            coordinator_cls.return_value.reindex.side_effect = [
                _batch(2, 1, 10),
                _batch(1, 1, 12),
                _batch(0, 0, 12),
            ]

            result = reindex_messages.apply(kwargs={"batch_size": 2}).get()

        assert result == {"status": "success", "processed": 3, "updated": 2, "last_id": 12}
        calls = coordinator_cls.return_value.reindex.call_args_list
        assert [c.kwargs["after_id"] for c in calls] == [0, 10, 12]
        assert mock_db_session.commit.call_count == 3
        mock_db_session.close.assert_called_once()

    def test_max_batches_hands_off_the_rest(self, mock_celery_app, mock_session_factory):
        """A run stopped by max_batches re-enqueues itself from the last id."""
        from planet_worker.tasks.index import reindex_messages

        with patch(
            "planet_core.infra.db.get_sync_session_factory",
            return_value=mock_session_factory,
        ), patch(
            "planet_core.domain.services.search.SearchIndexCoordinator"
        ) as coordinator_cls, patch.object(reindex_messages, "apply_async") as enqueue:
            coordinator_cls.return_value.reindex.side_effect = [
                _batch(2, 0, 5),
                _batch(2, 0, 9),
            ]

            result = reindex_messages.apply(
                kwargs={"batch_size": 2, "after_id": 1, "max_batches": 1}
            ).get()

        assert result == {"status": "continued", "processed": 2, "updated": 0, "last_id": 5}
        enqueue.assert_called_once_with(
            kwargs={"batch_size": 2, "after_id": 5, "max_batches": 1, "resume": True}
        )

    def test_max_batches_without_resume(self, mock_celery_app, mock_session_factory):
        from planet_worker.tasks.index import reindex_messages

        with patch(
            "planet_core.infra.db.get_sync_session_factory",
            return_value=mock_session_factory,
        ), patch(
            "planet_core.domain.services.search.SearchIndexCoordinator"
        ) as coordinator_cls, patch.object(reindex_messages, "apply_async") as enqueue:
            coordinator_cls.return_value.reindex.side_effect = [_batch(2, 0, 5)]

            result = reindex_messages.apply(
                kwargs={"batch_size": 2, "max_batches": 1, "resume": False}
            ).get()

        assert result["status"] == "success"
        assert result["last_id"] == 5
        enqueue.assert_not_called()

    def test_time_limit_resumes_from_last_commit(
        self, mock_celery_app, mock_db_session, mock_session_factory
    ):
        """The soft time limit drops the batch in flight and hands off the rest."""
        from celery.exceptions import SoftTimeLimitExceeded

        from planet_worker.tasks.index import reindex_messages

        with patch(
            "planet_core.infra.db.get_sync_session_factory",
            return_value=mock_session_factory,
        ), patch(
            "planet_core.domain.services.search.SearchIndexCoordinator"
        ) as coordinator_cls, patch.object(reindex_messages, "apply_async") as enqueue:
            coordinator_cls.return_value.reindex.side_effect = [
                _batch(3, 3, 40),
                _batch(3, 1, 57),
                SoftTimeLimitExceeded(),
            ]

            result = reindex_messages.apply(kwargs={"batch_size": 3, "after_id": 20}).get()

        assert result == {"status": "continued", "processed": 6, "updated": 4, "last_id": 57}
        enqueue.assert_called_once_with(
            kwargs={"batch_size": 3, "after_id": 57, "max_batches": 0, "resume": True}
        )
        assert mock_db_session.commit.call_count == 2
        mock_db_session.rollback.assert_called_once()
        mock_db_session.close.assert_called_once()

    def test_completed_sweep_is_not_requeued(self, mock_celery_app, mock_session_factory):
        from planet_worker.tasks.index import reindex_messages

        with patch(
            "planet_core.infra.db.get_sync_session_factory",
            return_value=mock_session_factory,
        ), patch(
            "planet_core.domain.services.search.SearchIndexCoordinator"
        ) as coordinator_cls, patch.object(reindex_messages, "apply_async") as enqueue:
            coordinator_cls.return_value.reindex.side_effect = [
                _batch(2, 1, 8),
                _batch(0, 0, 8),
            ]

            result = reindex_messages.apply(kwargs={"batch_size": 2, "max_batches": 5}).get()

        assert result["status"] == "success"
        enqueue.assert_not_called()

    def test_failure_rolls_back(self, mock_celery_app, mock_db_session, mock_session_factory):
        """A failing batch is rolled back and reported with the resume position."""
        from planet_worker.tasks.index import reindex_messages

        with patch(
            "planet_core.infra.db.get_sync_session_factory",
            return_value=mock_session_factory,
        ), patch(
            "planet_core.domain.services.search.SearchIndexCoordinator"
        ) as coordinator_cls:
            coordinator_cls.return_value.reindex.side_effect = [
                _batch(2, 2, 7),
                RuntimeError("disk full"),
            ]

            result = reindex_messages.apply().get()

        assert result["status"] == "error"
        assert result["last_id"] == 7
        assert result["error"] == "disk full"
        mock_db_session.rollback.assert_called_once()
