import pytest
from pydantic import ValidationError

from chatmock.config import Settings


def test_zero_delays_are_accepted():
    s = Settings(stream_delay_min=0, stream_delay_max=0, response_delay_min=0, response_delay_max=0)
    assert s.stream_delay_max == 0


@pytest.mark.parametrize(
    "overrides",
    [
        {"stream_delay_min": 0.5, "stream_delay_max": 0.1},
        {"response_delay_min": 2.0, "response_delay_max": 1.0},
        {"stream_delay_min": -0.1, "stream_delay_max": 0.1},
    ],
)
def test_misordered_delay_windows_fail_at_load(overrides):
    with pytest.raises(ValidationError) as exc:
        Settings(**overrides)
    assert "_MIN/MAX" in str(exc.value)


def test_delay_windows_read_from_environment(monkeypatch):
    monkeypatch.setenv("RESPONSE_DELAY_MIN", "3")
    monkeypatch.setenv("RESPONSE_DELAY_MAX", "1")
    with pytest.raises(ValidationError):
        Settings()
