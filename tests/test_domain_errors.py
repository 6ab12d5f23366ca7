import pytest

from rqueue.domain.errors import (
    ConnectionFatalError,
    MessageNotFoundError,
    MessageTooLongError,
    PayloadDecodeError,
    QueueExistsError,
    QueueNotFoundError,
    RQueueError,
    TransportError,
)


def test_rqueue_error_is_exception():
    err = RQueueError("test message")
    assert isinstance(err, Exception)
    assert str(err) == "test message"


def test_transport_error_stores_cause_and_message():
    cause = ConnectionRefusedError("refused")
    err = TransportError("Redis ping failed", cause)
    assert err.cause is cause
    assert "Redis ping failed" in str(err)
    assert "refused" in str(err)


def test_connection_fatal_error_stores_elapsed_and_attempts():
    err = ConnectionFatalError(181.5, 12)
    assert err.elapsed == 181.5
    assert err.attempts == 12
    assert "12 attempts" in str(err)


def test_queue_errors_store_queue_name():
    assert QueueExistsError("emails").queue == "emails"
    assert QueueNotFoundError("emails").queue == "emails"
    assert "emails" in str(QueueNotFoundError("emails"))


def test_message_not_found_stores_id():
    err = MessageNotFoundError("abc-123")
    assert err.message_id == "abc-123"
    assert "abc-123" in str(err)


def test_payload_decode_error_keeps_raw_body():
    cause = ValueError("bad json")
    err = PayloadDecodeError("{oops", cause)
    assert err.raw == "{oops"
    assert err.cause is cause


def test_error_hierarchy():
    for cls in (
        TransportError,
        ConnectionFatalError,
        QueueExistsError,
        QueueNotFoundError,
        MessageNotFoundError,
        MessageTooLongError,
        PayloadDecodeError,
    ):
        assert issubclass(cls, RQueueError)


def test_can_catch_subclass_as_base():
    with pytest.raises(RQueueError):
        raise QueueNotFoundError("q")
