from __future__ import annotations

import yaml

from counselchat.apps.reset import collect_reset_paths


def test_collect_reset_paths_dedupes_and_skips_memory_db(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    cfg_path = tmp_path / "instance.yaml"
    cfg_path.write_text(
        yaml.safe_dump(
            {
                "database": {"url": f"sqlite:///{tmp_path / 'chat.db'}"},
                "local_storage": {"path": str(tmp_path / "local.json")},
            }
        ),
        encoding="utf-8",
    )
    assert collect_reset_paths(str(cfg_path)) == [tmp_path / "local.json", tmp_path / "chat.db"]

    cfg_path.write_text(yaml.safe_dump({"database": {"url": "sqlite:///:memory:"}}), encoding="utf-8")
    assert [p.name for p in collect_reset_paths(str(cfg_path))] == ["local_storage.json"]
