"""Tests for adoption.seed.load_tools."""

from __future__ import annotations

import json

import pytest

from adoption.seed import SAMPLE_TOOLS, load_tools


class TestLoadTools:
    def test_bundled_sample(self) -> None:
        tools = load_tools()
        assert len(tools) == len(SAMPLE_TOOLS)
        assert len({t.tool_id for t in tools}) == len(tools)

    def test_from_file(self, tmp_path) -> None:
        path = tmp_path / "tools.json"
        path.write_text(json.dumps(SAMPLE_TOOLS[:2]), encoding="utf-8")
        tools = load_tools(str(path))
        assert [t.tool_id for t in tools] == [r["tool_id"] for r in SAMPLE_TOOLS[:2]]

    def test_bad_record(self, tmp_path) -> None:
        record = dict(SAMPLE_TOOLS[0], setup_difficulty="trivial")
        path = tmp_path / "tools.json"
        path.write_text(json.dumps([record]), encoding="utf-8")
        with pytest.raises(ValueError):
            load_tools(str(path))
