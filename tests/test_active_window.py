import sys
import threading
from pathlib import Path

import pytest

from conftest import ScriptedSource

from signal_engine.active_window import ActiveWindowInfo, ActiveWindowProvider, TimeoutActivitySource
from signal_engine.errors import ActivitySourceError


class HangingSource:
    def __init__(self):
        self.release = threading.Event()

    def current(self):
        self.release.wait(5)
        return ActiveWindowInfo(title="late", process_name="Code")


def test_app_label_falls_back_to_executable():
    assert ActiveWindowInfo(title="x", process_name="Code").app_label == "Code"
    assert ActiveWindowInfo(title="x", process_name="", process_path=Path("/opt/vim")).app_label == "vim"
    assert ActiveWindowInfo(title="x", process_name="").app_label == "Unknown"


def test_timeout_wrapper_passes_results_through():
    wrapper = TimeoutActivitySource(ScriptedSource("Slack", "general"), timeout_s=1.0)
    try:
        info = wrapper.current()
        assert info.app_label == "Slack"
        assert info.title == "general"
    finally:
        wrapper.close()


def test_hung_query_times_out_and_blocks_next_call():
    source = HangingSource()
    wrapper = TimeoutActivitySource(source, timeout_s=0.05)
    try:
        with pytest.raises(ActivitySourceError, match="timed out"):
            wrapper.current()
        with pytest.raises(ActivitySourceError, match="still running"):
            wrapper.current()
    finally:
        source.release.set()
        wrapper.close()


def test_source_errors_propagate():
    source = ScriptedSource()
    source.fail("access denied")
    wrapper = TimeoutActivitySource(source, timeout_s=1.0)
    try:
        with pytest.raises(ActivitySourceError, match="access denied"):
            wrapper.current()
    finally:
        wrapper.close()


@pytest.mark.skipif(sys.platform.startswith("win"), reason="provider is supported on Windows")
def test_provider_reports_unsupported_platform():
    provider = ActiveWindowProvider()
    assert provider.is_supported() is False
    with pytest.raises(ActivitySourceError):
        provider.current()
