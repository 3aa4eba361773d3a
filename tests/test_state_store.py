from gpt_stream.core.utils.state import JsonStateStore


def test_state_round_trips_through_file(tmp_path):
    path = tmp_path / "nested" / "state.json"
    store = JsonStateStore(path)
    store.update(context_selection=["a.py", "b.py"])

    reloaded = JsonStateStore(path)
    assert reloaded.context_selection() == ["a.py", "b.py"]
    assert reloaded.command_history() == []
    assert "last_updated" in reloaded.load()


def test_persist_trims_history_and_keeps_selection(tmp_path):
    path = tmp_path / "state.json"
    JsonStateStore(path).persist(["a.py"], [f"cmd {index}" for index in range(60)], limit=5)

    reloaded = JsonStateStore(path)
    assert reloaded.command_history() == ["cmd 55", "cmd 56", "cmd 57", "cmd 58", "cmd 59"]
    assert reloaded.context_selection() == ["a.py"]


def test_unreadable_state_falls_back_to_defaults(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonStateStore(path)
    assert store.context_selection() == []
    assert store.load()["version"] == "1.0"
