import json

import pytest
import structlog

from rqueue import log


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


def test_json_output(capsys: pytest.CaptureFixture[str]):
    log.configure("info", json=True)
    log.get_logger().info("queue_created", queue_name="jobs")

    line = json.loads(capsys.readouterr().out.strip())
    assert line["event"] == "queue_created"
    assert line["queue_name"] == "jobs"
    assert line["level"] == "info"
    assert "timestamp" in line


def test_level_filtering(capsys: pytest.CaptureFixture[str]):
    log.configure("info", json=True)
    log.get_logger().debug("get_message_tick", interval_idx=1)
    assert capsys.readouterr().out == ""


def test_bound_context(capsys: pytest.CaptureFixture[str]):
    log.configure("debug", json=True)
    log.get_logger(worker="w1").debug("tick")
    assert json.loads(capsys.readouterr().out)["worker"] == "w1"
