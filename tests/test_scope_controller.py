"""Tests for the scope controller: connection lifecycle, modes, marks, search and files."""

import pytest

from gpioscope.application.events import (
    BufferClearedEvent, CaptureCompleteEvent, ConnectionChangedEvent, CursorMovedEvent,
    ModeChangedEvent, SamplesLoadedEvent, TriggerFiredEvent
)
from gpioscope.config import LINK
from gpioscope.data_model import (
    IngestState, SaveFormat, ScopeSettings, TriggerSettings, TriggerType, TriggerWhen, ViewMode
)
from gpioscope.errors import ConnectionFailure, MalformedFile
from gpioscope.scope_controller import ScopeController
from gpioscope.session import ScopeSession
from gpioscope.sample_store import SampleStore
from .test_utils import write_capture


def record_events(controller, *event_types):
    seen = []
    for event_type in event_types:
        controller.event_bus.subscribe(event_type, seen.append)
    return seen


def rising_on(channel):
    types = [int(TriggerType.DONT_CARE)] * 32
    types[channel] = int(TriggerType.RISING)
    return types


# ---- Connection ----
def test_connect_clears_buffer_and_goes_live(controller, fake_link):
    controller.session.store.append(5, 1)
    controller.session.marks.blue = 5
    events = record_events(controller, BufferClearedEvent, ConnectionChangedEvent, ModeChangedEvent)

    assert controller.connect() is True
    assert controller.connected
    assert controller.factory_calls == [("localhost", 8888)]
    assert controller.session.store.is_empty
    assert controller.session.marks.blue == 0
    assert controller.mode == ViewMode.LIVE
    assert controller.session.revision == 3
    assert fake_link.notify_masks == [0x0FFFFFFC]

    assert [type(e) for e in events] == [BufferClearedEvent, ConnectionChangedEvent, ModeChangedEvent]
    assert events[1].connected and events[1].address == "localhost:8888"


def test_connect_uses_environment_address(fake_link):
    calls = []
    controller = ScopeController(
        session=ScopeSession(store=SampleStore(10)),
        link_factory=lambda host, port: calls.append((host, port)) or fake_link,
        environ={LINK.ENV_ADDRESS: "pi4", LINK.ENV_PORT: "9999"},
    )
    controller.connect()
    assert calls == [("pi4", 9999)]


def test_failed_connect_stays_dormant():
    def refuse(host, port):
        raise ConnectionFailure("refused", f"{host}:{port}", 'connect')

    controller = ScopeController(session=ScopeSession(store=SampleStore(10)),
                                 link_factory=refuse, environ={})
    events = record_events(controller, ConnectionChangedEvent)

    assert controller.connect() is False
    assert not controller.connected
    assert controller.mode == ViewMode.PAUSE
    assert controller.session.pipeline.state == IngestState.DORMANT
    assert events[0].connected is False and events[0].error == "refused"


def test_disconnect_pauses_and_closes_link(controller, fake_link):
    controller.connect()
    controller.disconnect()

    assert fake_link.closed
    assert not controller.connected
    assert controller.mode == ViewMode.PAUSE
    assert controller.session.pipeline.state == IngestState.DORMANT
    assert controller.live() is False


def test_quit_is_terminal(controller):
    controller.connect()
    controller.quit()
    assert controller.session.pipeline.state == IngestState.QUIT


# ---- Periodic tasks ----
def test_poll_input_fills_store(controller, fake_link):
    controller.connect()
    fake_link.push_reports([(100, 0x4), (200, 0x4), (300, 0xC)])

    assert controller.poll_input() == 3
    assert controller.session.store.records() == [(100, 0x4), (300, 0xC)]

    frame = controller.refresh_view()
    assert frame.mode == ViewMode.LIVE
    assert frame.end_tick <= 300


def test_poll_without_link_does_nothing(controller):
    assert controller.poll_input() == 0
    assert controller.refresh_view() is None


def test_link_failure_disconnects(controller, fake_link):
    controller.connect()
    events = record_events(controller, ConnectionChangedEvent)
    fake_link.fail_reads = True

    assert controller.poll_input() == 0
    assert not controller.connected
    assert fake_link.closed
    assert controller.mode == ViewMode.PAUSE
    assert events[-1].connected is False
    assert "closed" in events[-1].error


def test_trigger_capture_completes(controller, fake_link):
    controller.set_trigger_types(0, rising_on(2))
    controller.set_trigger_when(0, TriggerWhen.SAMPLE_TO)
    assert controller.enable_trigger(0)
    controller.connect()
    events = record_events(controller, TriggerFiredEvent, CaptureCompleteEvent, ModeChangedEvent)

    fake_link.push_reports([(10, 0x0), (20, 0x4), (30, 0x0)])
    controller.poll_input()

    assert controller.mode == ViewMode.PAUSE
    fired = [e for e in events if isinstance(e, TriggerFiredEvent)]
    assert fired[0].matched == 0b0001 and fired[0].tick == 20
    assert fired[0].counts == (1, 0, 0, 0)
    assert any(isinstance(e, CaptureCompleteEvent) and e.tick == 20 for e in events)
    assert any(isinstance(e, ModeChangedEvent) and e.new_mode == ViewMode.PAUSE for e in events)
    # Samples keep arriving after the pause
    assert len(controller.session.store) == 3


def test_going_live_rearms_triggers(controller):
    controller.set_trigger_types(0, rising_on(0))
    controller.enable_trigger(0)
    trigger = controller.session.triggers[0]
    trigger.fired = True
    trigger.count = 4

    controller.connect()
    assert trigger.fired is False
    assert controller.trigger_counts() == [0, 0, 0, 0]


# ---- Transport ----
def test_navigation_pauses(controller):
    controller.connect()
    controller.session.store.append(0, 0)
    controller.session.store.append(10 ** 7, 1)

    controller.go_first()
    assert controller.mode == ViewMode.PAUSE
    first_centre = controller.session.view.center_tick

    controller.go_forward()
    assert controller.session.view.center_tick == first_centre + 720000
    controller.go_back()
    assert controller.session.view.center_tick == first_centre

    controller.play()
    assert controller.mode == ViewMode.PLAY
    controller.go_last()
    assert controller.mode == ViewMode.PAUSE


def test_zoom_and_speed_delegate(controller):
    view = controller.session.view
    assert controller.zoom_in() and view.zoom_level == 12
    assert controller.zoom_out() and controller.zoom_out() and view.zoom_level == 14
    controller.zoom_default()
    assert controller.speed_up() and view.play_speed_label == "2X"
    controller.speed_default()
    assert controller.slow_down() and view.play_speed_label == "1/2"


# ---- Marks ----
def test_marks_keep_order(controller):
    marks = controller.session.marks
    controller.set_blue(500)
    controller.set_mark1()
    assert (marks.mark1, marks.mark2) == (500, 500)

    controller.set_blue(300)
    controller.set_mark2()
    assert (marks.mark1, marks.mark2) == (300, 500)

    controller.set_blue(800)
    controller.set_mark1()
    assert (marks.mark1, marks.mark2) == (500, 800)

    controller.set_blue(700)
    controller.set_mark2()
    assert (marks.mark1, marks.mark2) == (500, 700)

    controller.set_gold()
    assert marks.gold == 700


def test_mark_moves_are_published(controller):
    events = record_events(controller, CursorMovedEvent)
    controller.set_blue(42)
    controller.set_blue(42)
    assert len(events) == 1
    assert (events[0].mark, events[0].old_tick, events[0].new_tick) == ('blue', 0, 42)


# ---- Search ----
@pytest.fixture
def paused_with_edges(controller):
    store = controller.session.store
    for tick, level in [(1000, 0b00), (2000, 0b01), (3000, 0b11), (4000, 0b10)]:
        store.append(tick, level)
    controller.session.view.zoom_level = 3  # 400-tick window
    controller.set_blue(1000)
    controller.refresh_view()
    return controller


def test_edge_search_moves_blue_and_reveals(paused_with_edges):
    controller = paused_with_edges
    assert controller.search_edge(forward=True) == 2000
    assert controller.session.marks.blue == 2000
    assert controller.session.view.center_tick == 2160

    controller.set_highlighted(0b10)
    assert controller.search_edge(forward=True) == 3000
    assert controller.search_edge(forward=True) is None
    assert controller.session.marks.blue == 3000


def test_trigger_search(paused_with_edges):
    controller = paused_with_edges
    controller.set_trigger_types(1, rising_on(1))
    assert controller.search_trigger(forward=True) == 3000
    assert controller.search_trigger(forward=False) is None


def test_search_needs_pause_and_blue(controller):
    controller.session.store.append(0, 0)
    controller.session.store.append(10, 1)
    assert controller.search_edge() is None  # blue unset

    controller.connect()
    controller.session.store.append(0, 0)
    controller.session.store.append(10, 1)
    controller.set_blue(1)
    assert controller.mode == ViewMode.LIVE
    assert controller.search_edge() is None
    controller.pause()
    assert controller.search_edge() == 10


def test_toggle_highlight(controller):
    controller.toggle_highlight(3)
    controller.toggle_highlight(5)
    controller.toggle_highlight(3)
    assert controller.session.highlighted == 1 << 5
    assert controller.session.search_mask == 1 << 5


# ---- Buffer and files ----
def test_clear_buffer(controller):
    controller.session.store.append(1, 1)
    controller.set_blue(1)
    events = record_events(controller, BufferClearedEvent)

    controller.clear_buffer()
    assert controller.session.store.is_empty
    assert controller.session.marks.blue == 0
    assert len(events) == 1


def test_save_selection(controller, tmp_path):
    store = controller.session.store
    for tick in range(100, 600, 100):
        store.append(tick, tick // 100)
    controller.set_blue(200)
    controller.set_mark1()
    controller.set_blue(400)
    controller.set_mark2()

    assert controller.save(str(tmp_path / "all.piscope")) == 5
    assert controller.save(str(tmp_path / "sel.piscope"), selection_only=True) == 3
    assert controller.save(str(tmp_path / "sel.vcd"), SaveFormat.VCD, selection_only=True) == 3

    # No marks placed: selection means everything
    controller.session.marks.clear()
    assert controller.save(str(tmp_path / "none.piscope"), selection_only=True) == 5


def test_load_pauses_on_first_sample(controller, tmp_path):
    path = write_capture(tmp_path / "cap.piscope", [(0, 1), (500, 2), (900, 3)])
    controller.connect()
    events = record_events(controller, SamplesLoadedEvent)

    assert controller.load(str(path)) == 3
    assert controller.mode == ViewMode.PAUSE
    assert controller.session.store.records() == [(0, 1), (500, 2), (900, 3)]
    assert controller.session.view.center_tick == controller.session.view.span_ticks // 2
    assert events[0].record_count == 3


def test_load_malformed_keeps_buffer(controller, tmp_path):
    controller.session.store.append(7, 7)
    path = tmp_path / "bad.piscope"
    path.write_text("garbage\n")

    with pytest.raises(MalformedFile):
        controller.load(str(path))
    assert controller.session.store.records() == [(7, 7)]


# ---- Settings ----
def test_apply_and_export_settings(controller, fake_link):
    controller.connect()
    settings = ScopeSettings(
        server_address="pi.local",
        server_port=8889,
        active_channels=[4, 17],
        trigger_samples=4,
        triggers=[TriggerSettings(enabled=True, action=int(TriggerWhen.SAMPLE_FROM),
                                  channel_types=rising_on(4))]
                 + [TriggerSettings() for _ in range(3)],
    )
    controller.apply_settings(settings)

    assert fake_link.notify_masks[-1] == (1 << 4) | (1 << 17)
    assert controller.session.triggers[0].enabled
    assert controller.session.triggers.trigger_samples == 2000

    exported = controller.to_settings()
    assert exported.server_address == "pi.local"
    assert exported.active_channels == [4, 17]
    assert exported.trigger_samples == 4
    assert exported.triggers == settings.triggers


def test_set_active_channels(controller, fake_link):
    controller.connect()
    controller.set_active_channels([17, 4, 4])
    assert controller.session.settings.active_channels == [4, 17]
    assert controller.session.channels == [4, 17]
    controller.set_active_channels(None)
    assert fake_link.notify_masks[-1] == 0x0FFFFFFC
