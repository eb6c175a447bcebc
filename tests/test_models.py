import pytest

from portprobe.errors import ConfigError
from portprobe.models import CANCELLED, ScanConfig, ScanOutcome, ScanReport, Status


@pytest.mark.parametrize("kwargs", [
    dict(target="", timeout=1.0, concurrency=1),
    dict(target="   ", timeout=1.0, concurrency=1),
    dict(target="host", timeout=0, concurrency=1),
    dict(target="host", timeout=-0.5, concurrency=1),
    dict(target="host", timeout=float("nan"), concurrency=1),
    dict(target="host", timeout=float("inf"), concurrency=1),
    dict(target="host", timeout=1.0, concurrency=0),
    dict(target="host", timeout=1.0, concurrency=2.5),
    dict(target="host", timeout=1.0, concurrency=True),
    dict(target="host", timeout=1.0, concurrency=1, slot_grace=-1),
    dict(target="host", timeout=1.0, concurrency=1, slot_grace=float("nan")),
    dict(target="host", timeout=1.0, concurrency=1, slot_grace=float("inf")),
])
def test_config_validation(kwargs):
    with pytest.raises(ConfigError):
        ScanConfig(**kwargs)


def test_config_accepts_fractional_timeout():
    cfg = ScanConfig(target="example.com", timeout=0.25, concurrency=10)
    assert cfg.timeout == 0.25


def test_config_is_immutable():
    cfg = ScanConfig(target="example.com", timeout=1, concurrency=10)
    with pytest.raises(Exception):
        cfg.timeout = 5


def test_report_views():
    report = ScanReport(
        outcomes=(
            ScanOutcome(22, Status.OPEN),
            ScanOutcome(23, Status.CLOSED, "refused"),
            ScanOutcome(24, Status.ERROR, "Too many open files"),
            ScanOutcome(25, Status.ERROR, CANCELLED),
        ),
        unscanned=(26, 27),
        cancelled=True,
    )
    assert report.open_ports == {22}
    assert report.closed_ports == {23}
    assert [o.port for o in report.errors] == [24]
    assert report.aborted == (25,)
    assert report.undetermined == (25, 26, 27)
    assert not report.complete


def test_cancelled_outcome_is_not_closed():
    o = ScanOutcome(80, Status.ERROR, CANCELLED)
    assert o.is_cancelled
    assert o.status is not Status.CLOSED
    assert not ScanOutcome(80, Status.CLOSED, CANCELLED).is_cancelled
