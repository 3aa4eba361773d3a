import shutil
import subprocess
from pathlib import Path

import pytest

from gpt_stream.context import resolver as resolver_module
from gpt_stream.context.resolver import (
    ContextResolver,
    ContextUnavailable,
    FileReadFailure,
    FilesystemProjectProvider,
    MAX_UNKNOWN_CHOICES,
    find_project_root,
    resolve_ad_hoc_selection,
)
from gpt_stream.context.selection import ContextSelection
from gpt_stream.core.notifications import RecordingNotifier


class ScriptedPicker:
    def __init__(self, answers):
        self.answers = list(answers)
        self.offered = []

    def pick_one(self, prompt, candidates):
        self.offered.append(list(candidates))
        return self.answers.pop(0) if self.answers else None


@pytest.fixture
def project(tmp_path: Path) -> Path:
    (tmp_path / "pyproject.toml").write_text("[project]\nname = 'demo'\n", encoding="utf-8")
    (tmp_path / "a.py").write_text("print('a')\n", encoding="utf-8")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "b.py").write_text("print('b')", encoding="utf-8")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "dep.js").write_text("x", encoding="utf-8")
    return tmp_path


def test_project_files_skip_ignored_directories(project):
    provider = FilesystemProjectProvider(project)
    assert provider.list_project_files() == ["a.py", "pyproject.toml", "sub/b.py"]


def test_project_root_found_from_nested_directory(project):
    assert find_project_root(project / "sub") == project.resolve()
    assert find_project_root(project / "sub", markers=("no-such-marker-file",)) is None


def test_discover_without_project_raises(monkeypatch, tmp_path):
    monkeypatch.setattr(resolver_module, "find_project_root", lambda start: None)
    with pytest.raises(ContextUnavailable):
        FilesystemProjectProvider.discover(tmp_path)


def test_resolved_block_lists_and_fences_files(project):
    block = ContextResolver(FilesystemProjectProvider(project)).resolve_selected_files(["a.py", "sub/b.py"])

    assert block == (
        "The following project files are provided as context:\n"
        "- a.py\n"
        "- sub/b.py\n"
        "\n"
        "File: a.py\n```\nprint('a')\n```\n"
        "\n"
        "File: sub/b.py\n```\nprint('b')\n```\n"
    )


def test_unreadable_files_are_skipped_with_notification(project):
    notifier = RecordingNotifier()
    resolver = ContextResolver(FilesystemProjectProvider(project), notifier)

    block = resolver.resolve_selected_files(["missing.py", "a.py"])

    assert "- a.py" in block
    assert "missing.py" not in block
    assert len(notifier.messages) == 1
    assert "missing.py" in notifier.messages[0]


def test_resolution_is_idempotent(project):
    resolver = ContextResolver(FilesystemProjectProvider(project))
    assert resolver.resolve_selected_files(["a.py"]) == resolver.resolve_selected_files(["a.py"])


def test_nothing_readable_gives_empty_block(project):
    resolver = ContextResolver(FilesystemProjectProvider(project), RecordingNotifier())
    assert resolver.resolve_selected_files(["missing.py"]) == ""
    assert resolver.resolve_selected_files([]) == ""


def test_reading_outside_root_is_refused(project):
    with pytest.raises(FileReadFailure):
        FilesystemProjectProvider(project / "sub").read_file("../a.py")


def test_ad_hoc_selection_stops_on_empty_answer():
    picker = ScriptedPicker(["b.py", "unknown.py", "a.py", ""])

    chosen = resolve_ad_hoc_selection(picker, ["a.py", "b.py", "c.py"])

    assert chosen == ["b.py", "a.py"]
    assert picker.offered[1] == ["a.py", "c.py"]


def test_ad_hoc_selection_stops_on_sentinel_and_exhaustion():
    assert resolve_ad_hoc_selection(ScriptedPicker(["a.py", "[done]", "b.py"]), ["a.py", "b.py"]) == ["a.py"]
    assert resolve_ad_hoc_selection(ScriptedPicker(["a.py"]), ["a.py"]) == ["a.py"]


def test_selection_keeps_order_without_duplicates():
    selection = ContextSelection(["b.py", "a.py", "b.py"])
    assert selection.paths == ["b.py", "a.py"]
    assert "a.py" in selection

    selection.select(["c.py"])
    assert list(selection) == ["c.py"]

    selection.clear()
    assert not selection


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
def test_git_listing_keeps_non_ascii_names_readable(tmp_path):
    (tmp_path / "café.py").write_text("CAFE = 1\n", encoding="utf-8")
    (tmp_path / "plain.py").write_text("PLAIN = 1\n", encoding="utf-8")
    subprocess.run(["git", "init", "-q"], cwd=tmp_path, check=True)
    subprocess.run(["git", "add", "café.py", "plain.py"], cwd=tmp_path, check=True)
    provider = FilesystemProjectProvider(tmp_path)

    assert provider.list_project_files() == ["café.py", "plain.py"]
    block = ContextResolver(provider, RecordingNotifier()).resolve_selected_files(["café.py"])
    assert "File: café.py\n```\nCAFE = 1\n```" in block


def test_ad_hoc_selection_gives_up_after_repeated_unknown_answers():
    picker = ScriptedPicker(["nope.py"] * 10)

    assert resolve_ad_hoc_selection(picker, ["a.py"]) == []
    assert len(picker.offered) == MAX_UNKNOWN_CHOICES


def test_known_answer_resets_unknown_count():
    answers = ["x.py"] * (MAX_UNKNOWN_CHOICES - 1) + ["a.py"] + ["y.py"] * (MAX_UNKNOWN_CHOICES - 1) + ["b.py"]

    chosen = resolve_ad_hoc_selection(ScriptedPicker(answers), ["a.py", "b.py", "c.py"])

    assert chosen == ["a.py", "b.py"]
