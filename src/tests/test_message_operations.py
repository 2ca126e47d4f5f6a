import threading

import pytest

from queuewatch.driver.errors import AccessDeniedError, TransientDriverError
from queuewatch.models.message import MessagePriority, MessageRecord
from queuewatch.models.payload import BodyFormat, MessagePayload
from queuewatch.models.results import ErrorKind, MoveOutcome
from queuewatch.operations.export import ExportFormat

LOCAL_ORDERS = ".\\private$\\orders"
LOCAL_AUDIT = ".\\private$\\audit"
LOCAL_ERRORS = ".\\private$\\errors"


def _send(driver, queue_path=LOCAL_ORDERS, text='{"order": 1}', label="order"):
    return driver.send(
        queue_path,
        MessageRecord(
            label=label,
            priority=MessagePriority.HIGH,
            correlation_id="corr-1",
            body=MessagePayload.from_text(text),
        ),
    )


def test_get_messages_peeks_one_page(operations, driver):
    for index in range(60):
        _send(driver, label=f"order {index}")

    result = operations.get_messages(LOCAL_ORDERS)

    assert result.success
    assert len(result.data) == 50
    assert driver.get_message_count(LOCAL_ORDERS) == 60


def test_receive_moves_to_journal(operations, driver):
    _send(driver)

    received = operations.get_messages(LOCAL_ORDERS, peek_only=False)
    journal = operations.get_journal_messages(LOCAL_ORDERS)

    assert len(received.data) == 1
    assert driver.get_message_count(LOCAL_ORDERS) == 0
    assert [m.id for m in journal.data] == [received.data[0].id]


def test_read_failure_is_reported(operations, driver):
    driver.inject_fault("read", LOCAL_ORDERS, AccessDeniedError("access denied"))

    result = operations.get_messages(LOCAL_ORDERS)

    assert not result.success
    assert result.kind == ErrorKind.ACCESS_DENIED
    assert "access denied" in result.error


def test_get_message_by_id_and_lookup_id(operations, driver):
    message_id = _send(driver)
    lookup_id = driver.get_by_id(LOCAL_ORDERS, message_id).lookup_id

    assert operations.get_message(LOCAL_ORDERS, message_id).data.label == "order"
    assert operations.get_message_by_lookup_id(LOCAL_ORDERS, lookup_id).data.id == message_id
    assert operations.get_message(LOCAL_ORDERS, "missing\\1").kind == ErrorKind.NOT_FOUND


def test_empty_arguments_are_rejected(operations):
    with pytest.raises(ValueError):
        operations.get_messages("")
    with pytest.raises(ValueError):
        operations.delete_message(LOCAL_ORDERS, " ", confirm=True)


def test_render_body(operations, driver):
    message = driver.get_by_id(LOCAL_ORDERS, _send(driver, text='{"a":1}'))
    assert operations.render_body(message).data == '{\n  "a": 1\n}'


def test_send_body_serializes(operations, driver):
    result = operations.send_body(LOCAL_ERRORS, {"code": 7}, BodyFormat.JSON, label="failure")

    assert result.success
    stored = driver.get_by_id(LOCAL_ERRORS, result.data)
    assert stored.label == "failure"
    assert stored.body.format == BodyFormat.JSON
    assert operations.codec.deserialize(stored.body, dict).data == {"code": 7}


def test_send_body_refuses_binary(operations, driver):
    result = operations.send_body(LOCAL_ERRORS, {"code": 7}, BodyFormat.BINARY)
    assert not result.success
    assert driver.get_message_count(LOCAL_ERRORS) == 0


def test_delete_requires_confirmation(operations, driver):
    message_id = _send(driver)

    refused = operations.delete_message(LOCAL_ORDERS, message_id)

    assert refused.kind == ErrorKind.CONFIRMATION_REQUIRED
    assert driver.get_message_count(LOCAL_ORDERS) == 1
    assert operations.delete_message(LOCAL_ORDERS, message_id, confirm=True).success
    assert driver.get_message_count(LOCAL_ORDERS) == 0


def test_delete_from_missing_queue(operations):
    result = operations.delete_message(".\\private$\\nowhere", "x\\1", confirm=True)
    assert result.kind == ErrorKind.NOT_FOUND


def test_delete_messages_reports_each_item(operations, driver):
    first = _send(driver)
    second = _send(driver)

    result = operations.delete_messages(LOCAL_ORDERS, [first, "gone\\9", second], confirm=True)

    assert result.success
    assert result.kind == ErrorKind.PARTIAL
    assert result.data.success_count == 2
    assert result.data.failed_items == ["gone\\9"]
    assert operations.delete_messages(LOCAL_ORDERS, [first]).kind == ErrorKind.CONFIRMATION_REQUIRED


def test_move_message_cleanly(operations, driver):
    message_id = _send(driver)

    result = operations.move_message(LOCAL_ORDERS, LOCAL_AUDIT, message_id)

    assert result.success
    assert result.data == MoveOutcome.MOVED_CLEANLY
    moved = driver.get_by_id(LOCAL_AUDIT, result.metadata["new_message_id"])
    assert moved.label == "order"
    assert moved.correlation_id == "corr-1"
    assert moved.priority == MessagePriority.HIGH
    assert driver.get_message_count(LOCAL_ORDERS) == 0


def test_move_message_reports_duplicate_when_delete_fails(operations, driver):
    message_id = _send(driver)
    driver.inject_fault("delete", message_id, TransientDriverError("lock held"))

    result = operations.move_message(LOCAL_ORDERS, LOCAL_AUDIT, message_id)

    assert result.success
    assert result.data == MoveOutcome.MOVED_DUPLICATED
    assert result.kind == ErrorKind.PARTIAL
    assert "lock held" in result.error
    assert driver.get_message_count(LOCAL_ORDERS) == 1
    assert driver.get_message_count(LOCAL_AUDIT) == 1


def test_move_message_fails_when_copy_fails(operations, driver):
    message_id = _send(driver)
    driver.inject_fault("send", LOCAL_AUDIT, AccessDeniedError("no send right"))

    result = operations.move_message(LOCAL_ORDERS, LOCAL_AUDIT, message_id)

    assert not result.success
    assert result.kind == ErrorKind.ACCESS_DENIED
    assert driver.get_message_count(LOCAL_ORDERS) == 1


def test_move_to_same_queue_is_rejected(operations, driver):
    message_id = _send(driver)
    result = operations.move_message(LOCAL_ORDERS, LOCAL_ORDERS.upper(), message_id)
    assert result.kind == ErrorKind.INVALID_ARGUMENT


def test_move_messages(operations, driver):
    ids = [_send(driver) for _ in range(3)]
    driver.inject_fault("delete", ids[1], TransientDriverError("lock held"))

    result = operations.move_messages(LOCAL_ORDERS, LOCAL_ERRORS, ids)

    assert result.data.success_count == 3
    assert result.data.metadata["duplicated"] == [ids[1]]
    assert driver.get_message_count(LOCAL_ERRORS) == 3


def test_resend_message_keeps_original(operations, driver):
    message_id = _send(driver)

    to_same = operations.resend_message(LOCAL_ORDERS, message_id)
    to_other = operations.resend_message(LOCAL_ORDERS, message_id, LOCAL_ERRORS)

    assert to_same.success and to_other.success
    assert to_same.data != message_id
    assert driver.get_message_count(LOCAL_ORDERS) == 2
    assert driver.get_message_count(LOCAL_ERRORS) == 1


def test_purge_preview_and_purge(operations, driver):
    for _ in range(4):
        _send(driver)

    preview = operations.purge_preview(LOCAL_ORDERS)
    assert preview.data == 4
    assert "4 messages" in preview.metadata["description"]

    assert operations.purge_queue(LOCAL_ORDERS).kind == ErrorKind.CONFIRMATION_REQUIRED
    assert driver.get_message_count(LOCAL_ORDERS) == 4

    purged = operations.purge_queue(LOCAL_ORDERS, confirm=True)
    assert purged.data == 4
    assert purged.metadata["purged_count"] == 4
    assert driver.get_message_count(LOCAL_ORDERS) == 0


def test_export_message_each_format(operations, driver, tmp_path):
    message_id = _send(driver, text="<order id=\"1\"/>")

    for fmt in ExportFormat:
        target = tmp_path / f"message{fmt.extension}"
        result = operations.export_message(LOCAL_ORDERS, message_id, target, fmt)
        assert result.success, fmt
        assert target.exists()

    assert (tmp_path / "message.bin").read_bytes() == b'<order id="1"/>'
    text = (tmp_path / "message.txt").read_text(encoding="utf-8")
    assert "=== Message Details ===" in text
    assert "Format: Xml" in text


def test_export_messages_partial(operations, driver, tmp_path):
    ids = [_send(driver, label="first"), _send(driver, label="second")]
    target = tmp_path / "bulk.json"

    result = operations.export_messages(LOCAL_ORDERS, [ids[0], "missing\\5", ids[1]], target)

    assert result.success
    assert result.kind == ErrorKind.PARTIAL
    assert result.metadata["message_count"] == 2
    assert result.metadata["failed_ids"] == ["missing\\5"]

    restored = operations.read_export(target.read_bytes(), ExportFormat.JSON)
    assert [m.label for m in restored.data] == ["first", "second"]


def test_export_messages_refuses_binary(operations, driver, tmp_path):
    message_id = _send(driver)
    result = operations.export_messages(LOCAL_ORDERS, [message_id], tmp_path / "bulk.bin", ExportFormat.BINARY)
    assert result.kind == ErrorKind.UNSUPPORTED
    assert not (tmp_path / "bulk.bin").exists()


def test_export_messages_none_found(operations, tmp_path):
    result = operations.export_messages(LOCAL_ORDERS, ["a\\1", "b\\2"], tmp_path / "bulk.json")
    assert result.kind == ErrorKind.NOT_FOUND
    assert result.metadata["failed_ids"] == ["a\\1", "b\\2"]


def test_read_export_rejects_garbage(operations):
    result = operations.read_export(b"<not-an-export/>", ExportFormat.XML)
    assert result.kind == ErrorKind.MALFORMED
    assert operations.read_export(b"id,label", ExportFormat.CSV).kind == ErrorKind.MALFORMED


def test_set_cancel_event_stops_single_operations(operations, driver):
    _send(driver)
    cancel = threading.Event()
    cancel.set()

    read = operations.get_messages(LOCAL_ORDERS, cancel_event=cancel)
    sent = operations.send_message(LOCAL_ORDERS, MessageRecord(label="late"), cancel_event=cancel)
    purged = operations.purge_queue(LOCAL_ORDERS, confirm=True, cancel_event=cancel)

    for result in (read, sent, purged):
        assert not result.success
        assert result.kind == ErrorKind.CANCELLED
    assert driver.get_message_count(LOCAL_ORDERS) == 1


def test_bulk_delete_stops_when_cancelled(operations, driver, monkeypatch):
    message_ids = [_send(driver, label=f"order {index}") for index in range(4)]
    cancel = threading.Event()
    deleted = []
    delete = driver.delete

    def delete_then_cancel(queue_path, message_id):
        delete(queue_path, message_id)
        deleted.append(message_id)
        if len(deleted) == 2:
            cancel.set()

    monkeypatch.setattr(driver, "delete", delete_then_cancel)

    result = operations.delete_messages(LOCAL_ORDERS, message_ids, confirm=True, cancel_event=cancel)

    bulk = result.data
    assert bulk.success_count == 2
    assert [item.kind for item in bulk.items[2:]] == [ErrorKind.CANCELLED, ErrorKind.CANCELLED]
    assert bulk.failed_items == message_ids[2:]
    assert result.kind == ErrorKind.PARTIAL
    assert driver.get_message_count(LOCAL_ORDERS) == 2


def test_bulk_move_cancelled_up_front_moves_nothing(operations, driver):
    message_ids = [_send(driver) for _ in range(3)]
    cancel = threading.Event()
    cancel.set()

    result = operations.move_messages(LOCAL_ORDERS, LOCAL_AUDIT, message_ids, cancel_event=cancel)

    assert not result.success
    assert result.kind == ErrorKind.CANCELLED
    assert result.data.failed_count == 3
    assert driver.get_message_count(LOCAL_ORDERS) == 3
    assert driver.get_message_count(LOCAL_AUDIT) == 0


def test_cancelled_export_writes_nothing(operations, driver, tmp_path):
    message_ids = [_send(driver) for _ in range(2)]
    cancel = threading.Event()
    cancel.set()
    target = tmp_path / "export.json"

    result = operations.export_messages(LOCAL_ORDERS, message_ids, target, cancel_event=cancel)

    assert not result.success
    assert result.kind == ErrorKind.CANCELLED
    assert result.metadata["cancelled_ids"] == message_ids
    assert not target.exists()
