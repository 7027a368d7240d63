from __future__ import annotations

from pathlib import Path

from counselchat.cli import base_parser
from counselchat.core.config.loader import load_app_config


def _sqlite_path_from_url(url: str) -> Path | None:
    if not url.startswith("sqlite:///"):
        return None
    raw = url[len("sqlite:///") :]
    if not raw or raw == ":memory:":
        return None
    return Path(raw)


def _confirm(prompt: str) -> bool:
    value = input(prompt).strip().lower()
    return value in {"y", "yes"}


def collect_reset_paths(config_path: str | None) -> list[Path]:
    cfg = load_app_config(instance_path=config_path)
    paths = [Path(cfg.local_storage.path)]
    db_path = _sqlite_path_from_url(cfg.database.url)
    if db_path is not None:
        paths.append(db_path)

    unique_paths: list[Path] = []
    seen: set[Path] = set()
    for path in paths:
        rp = path.resolve()
        if rp not in seen:
            seen.add(rp)
            unique_paths.append(path)
    return unique_paths


def main() -> int:
    parser = base_parser("counselchat-reset", "Remove local CounselChat chat storage and the SQLite database")
    parser.add_argument("--yes", action="store_true", help="Skip confirmation prompt")
    args = parser.parse_args()

    unique_paths = collect_reset_paths(args.config)

    print("Reset will remove these files if present:")
    for path in unique_paths:
        print(f"- {path}")

    if not args.yes and not _confirm("Proceed? [y/N]: "):
        print("Reset cancelled.")
        return 1

    removed = 0
    for path in unique_paths:
        if path.exists() and path.is_file():
            path.unlink()
            removed += 1
            print(f"removed: {path}")
        else:
            print(f"skip (not found): {path}")

    print(f"Reset complete. removed_files={removed}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
