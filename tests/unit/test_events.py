from unittest.mock import MagicMock, patch

from fileproc.worker.events import (
    WorkerEvent,
    WorkerEventKind,
    WorkerEvents,
    log_worker_event,
)


def _make_event(kind: WorkerEventKind = WorkerEventKind.COMPLETED) -> WorkerEvent:
    return WorkerEvent(kind=kind, job_id=1, file_id=10, message_id=100)


class TestWorkerEvents:
    def test_delivers_to_all_listeners(self) -> None:
        events = WorkerEvents()
        first, second = MagicMock(), MagicMock()
        events.subscribe(first)
        events.subscribe(second)

        event = _make_event()
        events.emit(event)

        first.assert_called_once_with(event)
        second.assert_called_once_with(event)

    def test_unsubscribe_stops_delivery(self) -> None:
        events = WorkerEvents()
        listener = MagicMock()
        unsubscribe = events.subscribe(listener)

        unsubscribe()
        events.emit(_make_event())

        listener.assert_not_called()

    def test_failing_listener_does_not_block_others(self) -> None:
        events = WorkerEvents()
        broken = MagicMock(side_effect=RuntimeError("listener bug"))
        healthy = MagicMock()
        events.subscribe(broken)
        events.subscribe(healthy)

        events.emit(_make_event())

        healthy.assert_called_once()


class TestLogWorkerEvent:
    @patch("fileproc.worker.events.Log")
    def test_failed_event_logs_error(self, mock_log: MagicMock) -> None:
        log_worker_event(
            WorkerEvent(WorkerEventKind.FAILED, job_id=1, file_id=10, message_id=100, error="boom")
        )

        message = mock_log.error.call_args.args[0]
        assert "Job 1" in message
        assert "boom" in message

    @patch("fileproc.worker.events.Log")
    def test_stalled_event_logs_warning(self, mock_log: MagicMock) -> None:
        log_worker_event(_make_event(WorkerEventKind.STALLED))

        mock_log.warning.assert_called_once()
