import threading

import pytest
from PIL import Image

from helpers import FakeResponse, FakeSession, edit_ok, image_ok
from photobooth.errors import CaptureFailed, ConfigurationError, DeviceNotReady, StorageError
from photobooth.events import EventBus, OriginalCaptured, PipelineFailed, ProcessingStarted, ThemedReady
from photobooth.pipeline import PipelineCoordinator
from photobooth.storage import PhotoStore
from photobooth.themes import FALLBACK_THEMES
from photobooth.transform.client import TransformClient

NOW = 1700000000.75
GHIBLI = FALLBACK_THEMES[0]


@pytest.fixture
def session():
    return FakeSession(posts=[edit_ok()], gets=[image_ok(150, 100)])


@pytest.fixture
def client(session):
    return TransformClient('sk-test', session=session, sleep=lambda _: None)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def events(bus):
    seen = []
    for kind in (OriginalCaptured, ProcessingStarted, ThemedReady, PipelineFailed):
        bus.subscribe(kind, seen.append)
    return seen


@pytest.fixture
def coordinator(manager, controller, client, dispatcher, tmp_path, bus):
    pc = PipelineCoordinator(
        manager, controller, client, dispatcher, PhotoStore(tmp_path / 'booth'),
        bus=bus, capture_timeout=5.0, clock=lambda: NOW,
    )
    pc.select_theme(GHIBLI)
    return pc


def test_successful_run_emits_events_in_order(coordinator, events, tmp_path):
    result = coordinator.run()

    assert result.ok
    assert [type(e) for e in events] == [OriginalCaptured, ProcessingStarted, ThemedReady]
    captured, started, ready = events
    assert captured.timestamp == 1700000000
    assert captured.theme_name == 'Studio Ghibli'
    assert started.theme_name == 'Studio Ghibli'
    assert ready.original_path == tmp_path / 'booth' / 'original_1700000000.jpg'
    assert ready.themed_path == tmp_path / 'booth' / 'themed_1700000000.jpg'
    assert result.themed_path == ready.themed_path
    assert not coordinator.is_active


def test_saved_files_are_jpeg(coordinator):
    result = coordinator.run()

    with Image.open(result.original_path) as original:
        assert original.format == 'JPEG'
        assert original.size == (600, 400)
    with Image.open(result.themed_path) as themed:
        assert themed.format == 'JPEG'
        assert themed.size == (150, 100)


def test_original_is_on_disk_before_edit_request(coordinator, session, tmp_path):
    on_disk = []
    session.on_post = lambda url, kwargs: on_disk.append((tmp_path / 'booth' / 'original_1700000000.jpg').exists())

    coordinator.run()
    assert on_disk == [True]


def test_edit_prompt_names_theme(coordinator, session):
    coordinator.run()
    prompt = dict(session.post_calls[0]['files'])['prompt'][1].decode('utf-8')
    assert prompt.startswith('Transform this photo into Studio Ghibli style')
    assert GHIBLI.prompt in prompt


def test_countdown_runs_before_capture(coordinator, camera):
    calls = []
    coordinator.countdown = lambda seconds: calls.append((seconds, camera.capture_calls))
    coordinator.countdown_seconds = 2

    coordinator.run()
    assert calls == [(2, 0)]


def test_trigger_while_active_is_ignored(coordinator, session, camera):
    posted = threading.Event()
    release = threading.Event()

    def hold(url, kwargs):
        posted.set()
        release.wait(5)
    session.on_post = hold

    first = coordinator.start()
    assert posted.wait(5)

    assert coordinator.start() is None
    assert coordinator.run() is None
    assert coordinator.status().pipeline_active
    assert camera.capture_calls == 1

    release.set()
    assert first.result(timeout=5).ok
    assert not coordinator.is_active
    assert len(session.post_calls) == 1


def test_transform_failure_is_reported_once(coordinator, session, events, tmp_path):
    session.posts = [FakeResponse(500, text='boom')] * 3

    result = coordinator.run()

    assert not result.ok
    failures = [e for e in events if isinstance(e, PipelineFailed)]
    assert len(failures) == 1
    assert failures[0].message == 'Image generation failed. Please try again.'
    assert [type(e) for e in events] == [OriginalCaptured, ProcessingStarted, PipelineFailed]
    assert (tmp_path / 'booth' / 'original_1700000000.jpg').exists()
    assert not (tmp_path / 'booth' / 'themed_1700000000.jpg').exists()
    assert not coordinator.is_active


def test_unauthorized_key_gets_specific_message(coordinator, session, events):
    session.posts = [FakeResponse(401, text='invalid key')] * 3

    result = coordinator.run()
    assert 'Authentication' in result.error.message
    assert events[-1].message == result.error.message


def test_next_run_after_failure_succeeds(coordinator, session):
    session.posts = [FakeResponse(500, text='x')] * 3
    assert not coordinator.run().ok

    session.posts = [edit_ok()]
    session.gets = [image_ok()]
    assert coordinator.run().ok


def test_run_without_theme_fails_before_capture(coordinator, camera, events):
    coordinator.select_theme(None)

    result = coordinator.run()

    assert result.error.message == 'Please select a theme first'
    assert camera.capture_calls == 0
    assert events == [PipelineFailed('Please select a theme first')]


def test_unconfigured_service_fails_before_capture(coordinator, camera, session):
    coordinator.transform_client = TransformClient(None, session=session)

    result = coordinator.run()

    assert isinstance(result.error.cause, ConfigurationError)
    assert camera.capture_calls == 0
    assert session.post_calls == []


def test_stopped_camera_fails_before_capture(coordinator, manager, camera):
    manager.stop_session()

    result = coordinator.run()

    assert isinstance(result.error.cause, DeviceNotReady)
    assert camera.capture_calls == 0


def test_hung_capture_times_out(coordinator, camera, controller, session):
    camera.capture_delay = None
    coordinator.capture_timeout = 0.05

    result = coordinator.run()

    assert isinstance(result.error.cause, CaptureFailed)
    assert not controller.is_capturing
    assert session.post_calls == []


def test_unwritable_booth_dir_fails(coordinator, tmp_path, session):
    blocker = tmp_path / 'blocker'
    blocker.write_text('not a directory')
    coordinator.store = PhotoStore(blocker)

    result = coordinator.run()

    assert isinstance(result.error.cause, StorageError)
    assert session.post_calls == []


def test_status_summary(coordinator, manager):
    status = coordinator.status()
    assert (status.camera, status.transform, status.theme) == ('ready', 'ready', 'ready')
    assert status.overall == 'ready'
    assert 'Overall: ready' in status.describe()

    coordinator.select_theme(None)
    manager.stop_session()
    status = coordinator.status()
    assert status.theme == 'error'
    assert status.camera == 'warning'
    assert status.overall == 'error'


def test_run_finishes_when_dispatcher_stops_mid_request(coordinator, session, dispatcher):
    posted = threading.Event()
    release = threading.Event()

    def hold(url, kwargs):
        posted.set()
        release.wait(5)
    session.on_post = hold

    run = coordinator.start()
    assert posted.wait(5)
    dispatcher.stop()
    release.set()

    result = run.result(timeout=5)
    assert result.ok
    assert not coordinator.is_active


def test_run_after_dispatcher_stop_fails_cleanly(coordinator, dispatcher):
    dispatcher.stop()

    with pytest.raises(RuntimeError):
        coordinator.start()
    assert not coordinator.is_active
