"""Tests for the skald command line: output format and exit codes."""

import io
import json

import httpx
import pytest

from skald.cli import EXIT_API_ERROR, EXIT_NETWORK_ERROR, EXIT_OK, EXIT_USAGE, run
from skald.client import Skald


def _skald(handler) -> Skald:
    http = httpx.Client(transport=httpx.MockTransport(handler))
    return Skald("sk_cli_secret", "http://skald.test", http_client=http)


def _json(status: int, body) -> httpx.Response:
    return httpx.Response(status, json=body)


def _run(argv, handler):
    out, err = io.StringIO(), io.StringIO()
    code = run(argv, client=_skald(handler), out=out, err=err)
    return code, out.getvalue(), err.getvalue()


class TestCommands:
    def test_chat(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return _json(200, {"ok": True, "response": "Ship the beta.", "intermediate_steps": []})

        code, out, _ = _run(["chat", "What are our Q1 goals?"], handler)
        assert code == EXIT_OK
        assert out == "Ship the beta.\n"
        assert seen == [{"query": "What are our Q1 goals?", "stream": False}]

    def test_chat_stream(self):
        body = (
            b'data: {"type":"token","content":"Ship"}\n'
            b'data: {"type":"token","content":" it"}\n'
            b'data: {"type":"done"}\n'
        )

        def handler(request):
            assert json.loads(request.content)["stream"] is True
            return httpx.Response(200, content=body, headers={"Content-Type": "text/event-stream"})

        code, out, _ = _run(["chat", "q", "--stream"], handler)
        assert code == EXIT_OK
        assert out == "Ship it\n"

    def test_generate_with_rules(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return _json(200, {"ok": True, "response": "Dear team,", "intermediate_steps": []})

        code, out, _ = _run(["generate", "Write an update", "--rules", "Formal"], handler)
        assert code == EXIT_OK
        assert out == "Dear team,\n"
        assert seen[0]["rules"] == "Formal"

    def test_search(self):
        def handler(request):
            assert request.url.path == "/api/v1/search"
            return _json(
                200,
                {
                    "results": [
                        {
                            "uuid": "m1",
                            "title": "Roadmap",
                            "summary": "",
                            "content_snippet": "Q1 goals",
                            "distance": 0.25,
                        },
                        {
                            "uuid": "m2",
                            "title": "Notes",
                            "summary": "",
                            "content_snippet": "",
                            "distance": None,
                        },
                    ]
                },
            )

        code, out, _ = _run(["search", "goals", "--limit", "2"], handler)
        assert code == EXIT_OK
        assert out == "m1  Roadmap (0.250)\n    Q1 goals\nm2  Notes\n"

    def test_status_with_error_reason(self):
        def handler(request):
            assert request.url.path == "/api/v1/memo/ext-1/status"
            assert request.url.params["id_type"] == "reference_id"
            return _json(200, {"memo_uuid": "u1", "status": "error", "error_reason": "bad file"})

        code, out, _ = _run(["status", "ext-1", "--id-type", "reference_id"], handler)
        assert code == EXIT_OK
        assert out == "u1: error (bad file)\n"

    def test_delete(self):
        def handler(request):
            assert request.method == "DELETE"
            return httpx.Response(204)

        code, out, _ = _run(["delete", "m1"], handler)
        assert code == EXIT_OK
        assert out == "Deleted m1\n"


class TestExitCodes:
    def test_api_error(self):
        code, _, err = _run(["status", "missing"], lambda r: _json(404, {"error": "Memo not found"}))
        assert code == EXIT_API_ERROR
        assert "Skald API error (404)" in err

    def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        code, _, err = _run(["chat", "q"], handler)
        assert code == EXIT_NETWORK_ERROR
        assert err.startswith("ERROR:")

    def test_undecodable_response(self):
        code, _, _ = _run(["chat", "q"], lambda r: httpx.Response(200, text="<html>"))
        assert code == EXIT_API_ERROR

    def test_usage_error(self, capsys):
        code, _, _ = _run(["frobnicate"], lambda r: _json(200, {}))
        assert code == EXIT_USAGE

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("SKALD_API_KEY", raising=False)
        err = io.StringIO()
        assert run(["chat", "q"], out=io.StringIO(), err=err) == EXIT_USAGE
        assert "No API key" in err.getvalue()

    def test_help(self, capsys):
        assert run(["--help"]) == EXIT_OK
        assert "chat" in capsys.readouterr().out

    @pytest.mark.parametrize("argv", [["chat", "q"], ["delete", "m1"]])
    def test_api_key_not_echoed(self, monkeypatch, argv):
        monkeypatch.setenv("SKALD_API_KEY", "sk_cli_secret")

        def handler(request):
            return _json(401, {"error": f"bad key {request.headers['authorization']}"})

        code, _, err = _run(argv, handler)
        assert code == EXIT_API_ERROR
        assert "sk_cli_secret" not in err

    def test_unreadable_config_file(self, tmp_path):
        err = io.StringIO()
        argv = ["--config", str(tmp_path / "absent.yaml"), "chat", "q"]
        assert run(argv, out=io.StringIO(), err=err) == EXIT_USAGE
        assert "Cannot read config file" in err.getvalue()

    def test_resolved_key_not_echoed_without_environment(self, monkeypatch):
        monkeypatch.delenv("SKALD_API_KEY", raising=False)

        def handler(request):
            return _json(401, {"error": f"bad key {request.headers['authorization']}"})

        code, _, err = _run(["status", "m1"], handler)
        assert code == EXIT_API_ERROR
        assert "sk_cli_secret" not in err
        assert "REDACTED" in err
