"""Tests for FastAPI endpoints (no LLM calls)."""

import json
from urllib.parse import quote

import pytest
from fastapi.testclient import TestClient

import rbxmx
from forge_server.main import app
from forge_server.services import llm_service

client = TestClient(app)


SCRIPT_ASSET = {
    "name": "Greeter",
    "className": "Script",
    "source": "print(\"<hello & welcome>\")\n",
    "children": [],
}

EXPLORER_ROOT = {
    "id": "root",
    "name": "Workspace",
    "className": "DataModel",
    "children": [{"id": "old", "name": "Old", "className": "Folder", "children": []}],
}


class TestHealthEndpoint:
    def test_health(self):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["version"] == rbxmx.version()
        assert set(data["providers"]) == {"gemini", "claude"}


class TestValidateEndpoint:
    def test_valid_asset(self):
        resp = client.post("/api/validate", json={"assetJson": json.dumps(SCRIPT_ASSET)})
        assert resp.status_code == 200
        data = resp.json()
        assert data["valid"] is True
        assert data["nodeCount"] == 1

    def test_invalid_asset(self):
        resp = client.post("/api/validate", json={"assetJson": '{"name":"NoClass"}'})
        assert resp.status_code == 200
        data = resp.json()
        assert data["valid"] is False
        assert data["error"] is not None


class TestExportEndpoint:
    def test_export(self):
        resp = client.post("/api/export", json=SCRIPT_ASSET)
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/xml")
        assert 'filename="Greeter.rbxmx"' in resp.headers["content-disposition"]
        assert json.loads(resp.headers["x-stats"])["node_count"] == 1
        assert "<![CDATA[print(\"<hello & welcome>\")\n]]>" in resp.text

    def test_export_missing_class_is_rejected(self):
        resp = client.post("/api/export", json={"name": "NoClass"})
        assert resp.status_code == 422

    def test_export_non_ascii_name(self):
        resp = client.post("/api/export", json={**SCRIPT_ASSET, "name": "城堡🏰"})
        assert resp.status_code == 200
        disposition = resp.headers["content-disposition"]
        assert disposition.isascii()
        assert "filename*=UTF-8''" + quote("城堡🏰.rbxmx", safe="") in disposition


class TestImportEndpoint:
    def test_import_merges_into_root(self):
        xml = rbxmx.encode(rbxmx.AssetNode.model_validate(SCRIPT_ASSET))
        resp = client.post("/api/import", json={"xml": xml, "explorerRoot": EXPLORER_ROOT})
        assert resp.status_code == 200
        data = resp.json()
        assert data["error"] is None
        assert data["asset"]["className"] == "Script"
        assert data["asset"]["source"] == SCRIPT_ASSET["source"]
        assert [c["name"] for c in data["explorerRoot"]["children"]] == ["Old", "Greeter"]
        assert data["stats"]["node_count"] == 1

    def test_import_without_root(self):
        xml = rbxmx.encode(rbxmx.AssetNode.model_validate(SCRIPT_ASSET))
        data = client.post("/api/import", json={"xml": xml}).json()
        assert data["asset"]["name"] == "Greeter"
        assert data["explorerRoot"] is None

    @pytest.mark.parametrize("xml", ["not xml", "<foo></foo>"])
    def test_import_failure_leaves_root_untouched(self, xml):
        resp = client.post("/api/import", json={"xml": xml, "explorerRoot": EXPLORER_ROOT})
        assert resp.status_code == 200
        data = resp.json()
        assert data["asset"] is None
        assert data["error"]
        assert [c["id"] for c in data["explorerRoot"]["children"]] == ["old"]


class TestChatEndpoint:
    def test_chat_merges_assets(self, monkeypatch):
        async def fake_chat(message, history, explorer_root, provider, model):
            return "Built it.", [rbxmx.AssetNode.model_validate(SCRIPT_ASSET)], {"provider": provider}

        monkeypatch.setattr(llm_service, "chat", fake_chat)
        resp = client.post("/api/chat", json={"message": "make a greeter", "explorerRoot": EXPLORER_ROOT})
        assert resp.status_code == 200
        data = resp.json()
        assert data["error"] is None
        assert data["reply"] == "Built it."
        assert data["message"]["role"] == "assistant"
        assert data["message"]["assetsGenerated"][0]["name"] == "Greeter"
        assert [c["name"] for c in data["explorerRoot"]["children"]] == ["Old", "Greeter"]
        assert "total_ms" in data["timings"]

    def test_chat_failure(self, monkeypatch):
        async def failing_chat(*args, **kwargs):
            raise RuntimeError("quota")

        monkeypatch.setattr(llm_service, "chat", failing_chat)
        resp = client.post("/api/chat", json={"message": "hello", "explorerRoot": EXPLORER_ROOT})
        data = resp.json()
        assert data["error"] == "LLM error: quota"
        assert data["reply"] == llm_service.FAILURE_REPLY
        assert data["assets"] == []
        assert data["explorerRoot"]["children"][0]["id"] == "old"

    def test_empty_message_rejected(self):
        resp = client.post("/api/chat", json={"message": ""})
        assert resp.status_code == 422


class TestProjectEndpoints:
    def test_new(self):
        data = client.get("/api/project/new").json()
        assert data["history"] == []
        assert data["explorerRoot"]["className"] == "DataModel"

    def test_save_and_load(self):
        state = {"history": [], "explorerRoot": EXPLORER_ROOT, "projectName": "Obby"}
        resp = client.post("/api/project/save", json=state)
        assert resp.status_code == 200
        assert 'filename="Obby_save.json"' in resp.headers["content-disposition"]

        loaded = client.post("/api/project/load", json={"content": resp.text})
        assert loaded.status_code == 200
        data = loaded.json()
        assert data["projectName"] == "Obby"
        assert data["explorerRoot"]["children"][0]["id"] == "old"

    def test_load_garbage(self):
        resp = client.post("/api/project/load", json={"content": "{nope"})
        assert resp.status_code == 422
        assert "not valid JSON" in resp.json()["detail"]

    def test_save_non_ascii_project_name(self):
        state = {"history": [], "explorerRoot": EXPLORER_ROOT, "projectName": "游戏"}
        resp = client.post("/api/project/save", json=state)
        assert resp.status_code == 200
        disposition = resp.headers["content-disposition"]
        assert 'filename="___save.json"' in disposition
        assert "filename*=UTF-8''" + quote("游戏_save.json", safe="") in disposition


class TestExamplesEndpoint:
    def test_examples(self):
        resp = client.get("/api/examples")
        assert resp.status_code == 200
        data = resp.json()
        assert len(data) >= 3
        for ex in data:
            assert "prompt" in ex
            parsed = json.loads(ex["asset_json"])
            items = parsed if isinstance(parsed, list) else [parsed]
            for item in items:
                rbxmx.AssetNode.model_validate(item)


class TestChatWebSocket:
    def test_stream(self, monkeypatch):
        async def fake_stream(message, history, explorer_root, provider, model):
            for part in ["Here:\n```json\n", json.dumps(SCRIPT_ASSET), "\n```"]:
                yield part

        monkeypatch.setattr(llm_service, "stream_chat", fake_stream)
        with client.websocket_connect("/ws/chat") as ws:
            ws.send_json({"message": "greeter", "explorerRoot": EXPLORER_ROOT})
            frames = []
            while True:
                frame = ws.receive_json()
                frames.append(frame)
                if frame["type"] in ("done", "error"):
                    break

        types = [f["type"] for f in frames]
        assert types[0] == "status"
        assert types.count("tokens") == 3
        assets_frame = next(f for f in frames if f["type"] == "assets")
        assert assets_frame["assets"][0]["name"] == "Greeter"
        assert [c["name"] for c in assets_frame["explorerRoot"]["children"]] == ["Old", "Greeter"]
        assert types[-1] == "done"

    def test_invalid_request(self):
        with client.websocket_connect("/ws/chat") as ws:
            ws.send_json({"message": ""})
            frame = ws.receive_json()
        assert frame["type"] == "error"
