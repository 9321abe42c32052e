"""Tests for wahelper.server: the HTTP control plane."""

import httpx
import pytest
import pytest_asyncio

from wahelper.server import ACK_RECEIVED, ControlServer


class RecordingController:
    def __init__(self, status="Server is running in both mode"):
        self.status = status
        self.submitted = []

    def status_text(self):
        return self.status

    def submit(self, name, args):
        self.submitted.append((name, list(args)))
        if name == "stop":
            return "exiting"
        if name == "restart":
            return "restarting"
        return ACK_RECEIVED


@pytest.fixture
def controller():
    return RecordingController()


@pytest_asyncio.fixture
async def server(controller):
    srv = ControlServer(controller, port=0)
    await srv.start()
    yield srv
    await srv.stop()


def _url(server, path="/"):
    return f"http://127.0.0.1:{server.port}{path}"


class TestControlServer:
    """GET status and POST command streams."""

    @pytest.mark.asyncio
    async def test_get_status(self, server, controller):
        async with httpx.AsyncClient(trust_env=False) as client:
            resp = await client.get(_url(server))
        assert resp.status_code == 200
        assert resp.text == "Server is running in both mode"

    @pytest.mark.asyncio
    async def test_post_single_command(self, server, controller):
        async with httpx.AsyncClient(trust_env=False) as client:
            resp = await client.post(_url(server), content='{"args": ["SEND", "14155550100", "hi"]}')
        assert resp.status_code == 200
        assert resp.text == ACK_RECEIVED
        assert controller.submitted == [("send", ["14155550100", "hi"])]

    @pytest.mark.asyncio
    async def test_post_stream_of_commands(self, server, controller):
        body = '{"args": ["send", "a", "x"]}\n{"args": ["markread", "a", "1"]}'
        async with httpx.AsyncClient(trust_env=False) as client:
            resp = await client.post(_url(server), content=body)
        assert resp.text.split("\n") == [ACK_RECEIVED, ACK_RECEIVED]
        assert [name for name, _ in controller.submitted] == ["send", "markread"]

    @pytest.mark.asyncio
    async def test_stop_ends_processing(self, server, controller):
        body = '{"args": ["stop"]}{"args": ["send", "a", "x"]}'
        async with httpx.AsyncClient(trust_env=False) as client:
            resp = await client.post(_url(server), content=body)
        assert resp.text == "exiting"
        assert controller.submitted == [("stop", [])]

    @pytest.mark.asyncio
    async def test_empty_args_acknowledged(self, server, controller):
        body = '{"args": []}{"args": ["send", "a", "x"]}'
        async with httpx.AsyncClient(trust_env=False) as client:
            resp = await client.post(_url(server), content=body)
        assert resp.text == ACK_RECEIVED
        assert controller.submitted == []

    @pytest.mark.asyncio
    async def test_bad_json_rejected(self, server, controller):
        body = '{"args": ["send", "a", "x"]} {"args": ['
        async with httpx.AsyncClient(trust_env=False) as client:
            resp = await client.post(_url(server), content=body)
        assert resp.status_code == 400
        assert resp.text == ACK_RECEIVED
        assert len(controller.submitted) == 1

    @pytest.mark.asyncio
    async def test_non_string_args_rejected(self, server, controller):
        async with httpx.AsyncClient(trust_env=False) as client:
            resp = await client.post(_url(server), content='{"args": ["send", 1]}')
        assert resp.status_code == 400
        assert controller.submitted == []

    @pytest.mark.asyncio
    async def test_other_methods_rejected(self, server):
        async with httpx.AsyncClient(trust_env=False) as client:
            resp = await client.put(_url(server), content="{}")
        assert resp.status_code == 405

    @pytest.mark.asyncio
    async def test_unknown_path(self, server):
        async with httpx.AsyncClient(trust_env=False) as client:
            resp = await client.get(_url(server, "/message"))
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_start_stop_idempotent(self, controller):
        srv = ControlServer(controller, port=0)
        await srv.start()
        port = srv.port
        await srv.start()
        assert srv.running
        assert srv.port == port
        await srv.stop()
        await srv.stop()
        assert not srv.running
