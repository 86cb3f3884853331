import base64
import logging
import os

from api_client import ApiConnectionError, ApiResponseError
from generation import (
    DOWNLOAD_FILENAME,
    GenerationOrchestrator,
    GenerationSnapshot,
    GenerationState,
    PREVIEW_FILENAME,
)


def make_orchestrator(client, sleeps=None):
    recorded = sleeps if sleeps is not None else []
    return GenerationOrchestrator(client, reveal_delay=0.05, sleep=recorded.append)


def test_starts_idle(client):
    orchestrator = make_orchestrator(client)
    assert orchestrator.snapshot == GenerationSnapshot(GenerationState.IDLE)
    assert orchestrator.result is None


def test_successful_submission_states(client):
    sleeps = []
    orchestrator = make_orchestrator(client, sleeps)
    snapshots = list(orchestrator.submit("@cf/flux", {"prompt": "a cat", "steps": 20}, True))

    assert [s.state for s in snapshots] == [
        GenerationState.LOADING,
        GenerationState.SUCCESS,
        GenerationState.SUCCESS,
    ]
    loading, success, revealed = snapshots
    assert loading.result is None and not loading.revealed
    assert success.result == "https://cdn.test/result.png" and not success.revealed
    assert revealed.result == success.result and revealed.revealed
    assert sleeps == [0.05]
    assert client.calls == [("generate_image", {"model": "@cf/flux", "prompt": "a cat", "steps": 20})]


def test_reveal_waits_for_delay(client):
    seen = []

    def fake_sleep(delay):
        seen.append((delay, orchestrator.result, orchestrator.revealed))

    orchestrator = GenerationOrchestrator(client, reveal_delay=0.05, sleep=fake_sleep)
    list(orchestrator.submit("@cf/flux", {"prompt": "a cat"}, True))
    # During the delay the result is set and not yet revealed.
    assert seen == [(0.05, "https://cdn.test/result.png", False)]
    assert orchestrator.revealed


def test_invalid_form_is_a_no_op(client):
    orchestrator = make_orchestrator(client)
    assert list(orchestrator.submit("@cf/flux", {}, False)) == []
    assert client.count("generate_image") == 0
    assert orchestrator.state == GenerationState.IDLE


def test_submission_while_loading_is_a_no_op(client):
    orchestrator = make_orchestrator(client)
    running = orchestrator.submit("@cf/flux", {"prompt": "a cat"}, True)
    assert next(running).state == GenerationState.LOADING

    assert list(orchestrator.submit("@cf/flux", {"prompt": "a dog"}, True)) == []
    assert client.count("generate_image") == 0

    list(running)
    assert client.count("generate_image") == 1
    assert orchestrator.state == GenerationState.SUCCESS


def test_rejection_then_success(client, caplog):
    orchestrator = make_orchestrator(client)
    client.generate_response = ApiResponseError(500, "Internal Server Error", "http://api.test")

    with caplog.at_level(logging.ERROR):
        snapshots = list(orchestrator.submit("@cf/flux", {"prompt": "a cat"}, True))
    assert [s.state for s in snapshots] == [GenerationState.LOADING, GenerationState.FAILED]
    assert orchestrator.result is None
    assert "Error generating image" in caplog.text

    client.generate_response = "https://cdn.test/second.png"
    list(orchestrator.submit("@cf/flux", {"prompt": "a cat"}, True))
    assert orchestrator.state == GenerationState.SUCCESS
    assert orchestrator.result == "https://cdn.test/second.png"


def test_transport_error_fails(client):
    orchestrator = make_orchestrator(client)
    client.generate_response = ApiConnectionError("timed out")
    list(orchestrator.submit("@cf/flux", {"prompt": "a cat"}, True))
    assert orchestrator.state == GenerationState.FAILED


def test_new_submission_clears_previous_result(client):
    orchestrator = make_orchestrator(client)
    list(orchestrator.submit("@cf/flux", {"prompt": "a cat"}, True))
    assert orchestrator.result is not None

    running = orchestrator.submit("@cf/flux", {"prompt": "a dog"}, True)
    loading = next(running)
    assert loading.state == GenerationState.LOADING
    assert loading.result is None and not loading.revealed


def test_download_without_result_is_a_no_op(client, tmp_path):
    orchestrator = make_orchestrator(client)
    assert orchestrator.download(str(tmp_path)) is None
    assert os.listdir(tmp_path) == []


def test_download_writes_fixed_filename(client, tmp_path):
    orchestrator = make_orchestrator(client)
    list(orchestrator.submit("@cf/flux", {"prompt": "a cat"}, True))

    path = orchestrator.download(str(tmp_path / "session"))
    assert os.path.basename(path) == DOWNLOAD_FILENAME
    with open(path, "rb") as fh:
        assert fh.read() == client.image_bytes
    assert ("fetch_image_bytes", "https://cdn.test/result.png") in client.calls


def test_display_source_for_urls_and_data_uris(client, tmp_path):
    orchestrator = make_orchestrator(client)
    assert orchestrator.display_source(str(tmp_path)) is None

    client.generate_response = "/api/image?key=abc.png"
    list(orchestrator.submit("@cf/flux", {"prompt": "a cat"}, True))
    assert orchestrator.display_source(str(tmp_path)) == "http://api.test/api/image?key=abc.png"

    payload = base64.b64encode(b"pixels").decode("ascii")
    client.generate_response = f"data:image/png;base64,{payload}"
    list(orchestrator.submit("@cf/flux", {"prompt": "a cat"}, True))
    path = orchestrator.display_source(str(tmp_path))
    with open(path, "rb") as fh:
        assert fh.read() == b"pixels"


def test_data_uri_previews_reuse_one_file(client, tmp_path):
    orchestrator = make_orchestrator(client)
    paths = []
    for pixels in (b"first", b"second"):
        payload = base64.b64encode(pixels).decode("ascii")
        client.generate_response = f"data:image/png;base64,{payload}"
        list(orchestrator.submit("@cf/flux", {"prompt": "a cat"}, True))
        paths.append(orchestrator.display_source(str(tmp_path)))

    assert paths[0] == paths[1]
    assert os.listdir(tmp_path) == [PREVIEW_FILENAME]
    with open(paths[1], "rb") as fh:
        assert fh.read() == b"second"
