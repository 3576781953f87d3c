import pytest

from photobooth.errors import (
    APIError,
    CaptureBusy,
    CaptureFailed,
    DeviceNotFound,
    DeviceSetupFailed,
    NetworkFailure,
    PhotoBoothError,
    PipelineError,
    RetriesExhausted,
    StorageError,
    to_pipeline_error,
)


def test_pipeline_error_passes_through():
    err = PipelineError('Please select a theme first')
    assert to_pipeline_error(err) is err


@pytest.mark.parametrize('status, fragment', [(401, 'Authentication'), (429, 'busy')])
def test_exhausted_api_errors_get_specific_messages(status, fragment):
    exc = RetriesExhausted(APIError(status, 'nope'), 3)
    error = to_pipeline_error(exc)
    assert fragment in error.message
    assert error.cause is exc


def test_exhausted_network_failure_uses_generic_transform_message():
    error = to_pipeline_error(RetriesExhausted(NetworkFailure('down'), 3))
    assert error.message == 'Image generation failed. Please try again.'


@pytest.mark.parametrize('exc', [CaptureBusy('x'), StorageError('x'), DeviceNotFound('x')])
def test_booth_errors_use_their_user_message(exc):
    assert to_pipeline_error(exc).message == type(exc).user_message


def test_unknown_exceptions_get_generic_message():
    error = to_pipeline_error(KeyError('oops'))
    assert error.message == PhotoBoothError.user_message
    assert isinstance(error.cause, KeyError)


def test_capture_failed_keeps_cause():
    cause = RuntimeError('sensor')
    exc = CaptureFailed(cause)
    assert exc.cause is cause
    assert 'sensor' in str(exc)


def test_not_found_is_a_setup_failure():
    assert issubclass(DeviceNotFound, DeviceSetupFailed)
