from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import pytest

from rename_images import cli
from rename_images.command import Summary
from rename_images.config import ConfigError


def test_parse_args_defaults():
    args = cli.parse_args([])

    assert args.path == Path(".")
    assert args.network is False
    assert args.sites_page == 0
    assert args.search_replace is False
    assert args.tables is None
    assert args.include_columns == "post_content,post_excerpt,meta_value"
    assert args.dry_run is False


def test_main_wires_options_through(monkeypatch: pytest.MonkeyPatch, fake_db, wp_config, tmp_path):
    seen: Dict[str, Any] = {}

    def fake_load(path, overrides=None):
        seen["path"] = path
        seen["overrides"] = overrides
        return wp_config

    def fake_run(db, config, opts):
        seen["db"] = db
        seen["opts"] = opts
        return Summary(sites=2, found=3, renamed=3)

    monkeypatch.setattr(cli, "load_wp_config", fake_load)
    monkeypatch.setattr(cli.Database, "connect", classmethod(lambda cls, config: fake_db))
    monkeypatch.setattr(cli, "run", fake_run)

    cli.main([
        "--path", str(tmp_path),
        "--network", "--sites-page", "2",
        "--search-replace",
        "--tables", "wp_*posts",
        "--include-columns", "post_content",
        "--no-progress",
        "--db-name", "other",
    ])

    opts = seen["opts"]
    assert seen["path"] == tmp_path
    assert seen["overrides"]["DB_NAME"] == "other"
    assert seen["overrides"]["DB_USER"] is None
    assert seen["db"] is fake_db
    assert opts.network is True
    assert opts.sites_page == 2
    assert opts.search_replace is True
    assert opts.tables == "wp_*posts"
    assert opts.include_columns == "post_content"
    assert opts.progress is False


def test_main_exits_on_config_error(monkeypatch: pytest.MonkeyPatch, tmp_path):
    def broken(path, overrides=None):
        raise ConfigError("no wp-config.php")

    monkeypatch.setattr(cli, "load_wp_config", broken)
    error_log = tmp_path / "ERRORS.txt"

    with pytest.raises(SystemExit) as ei:
        cli.main(["--error-log", str(error_log)])

    assert ei.value.code == 1
    assert "no wp-config.php" in error_log.read_text(encoding="utf-8")


def test_negative_sites_page_is_rejected():
    with pytest.raises(SystemExit):
        cli.main(["--sites-page", "-1"])
