"""Tests for project save/load."""

import json
import pytest

import rbxmx
from forge_server.models import ChatMessage, ProjectState
from forge_server.services import project_service


SAVED_PROJECT = json.dumps({
    "history": [
        {"id": "1", "role": "user", "content": "Make a kill brick", "timestamp": 1700000000000},
        {
            "id": "2",
            "role": "assistant",
            "content": "Here it is.",
            "assetsGenerated": [{"id": "a1", "name": "KillBrick", "className": "Part", "children": []}],
            "timestamp": 1700000001000,
        },
    ],
    "explorerRoot": {
        "id": "root",
        "name": "Workspace",
        "className": "DataModel",
        "children": [{"id": "a1", "name": "KillBrick", "className": "Part", "children": []}],
    },
    "projectName": "Obby",
})


class TestNewProject:
    def test_defaults(self):
        state = project_service.new_project()
        assert state.history == []
        assert state.explorer_root.id == "root"
        assert state.explorer_root.name == "Workspace"
        assert state.explorer_root.class_name == "DataModel"
        assert state.project_name


class TestLoadProject:
    def test_load(self):
        state = project_service.load_project(SAVED_PROJECT)
        assert state.project_name == "Obby"
        assert len(state.history) == 2
        assert state.history[1].assets_generated[0].name == "KillBrick"
        assert state.explorer_root.children[0].id == "a1"

    def test_bad_json(self):
        with pytest.raises(project_service.ProjectFormatError, match="not valid JSON"):
            project_service.load_project("{oops")

    def test_bad_layout(self):
        bad = json.dumps({"history": [{"role": "robot", "content": "?"}]})
        with pytest.raises(project_service.ProjectFormatError, match="invalid layout"):
            project_service.load_project(bad)


class TestDumpProject:
    def test_camel_case_round_trip(self):
        state = ProjectState(
            history=[ChatMessage(role="user", content="hi")],
            explorer_root=rbxmx.AssetNode(id="root", name="Workspace", class_name="DataModel"),
            project_name="Test",
        )
        text = project_service.dump_project(state)
        data = json.loads(text)
        assert set(data) == {"history", "explorerRoot", "projectName"}
        assert data["explorerRoot"]["className"] == "DataModel"
        assert project_service.load_project(text) == state

    def test_filename(self):
        assert project_service.project_filename("My Game") == "My Game_save.json"
        assert project_service.project_filename("a/b") == "a_b_save.json"
        assert project_service.project_filename("") == "project_save.json"
