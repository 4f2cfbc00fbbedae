"""Tests for the command-line entry point."""

import json
import logging

import pytest

import main


@pytest.fixture
def isolated_run(tmp_path, monkeypatch):
    """Run from an empty directory and restore root logging afterwards."""
    monkeypatch.chdir(tmp_path)
    for name in ('RSS_SCORE_THRESHOLD', 'PROXY_API_KEY', 'RENDER_ENDPOINT'):
        monkeypatch.delenv(name, raising=False)
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield tmp_path
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


def test_parser_subcommands():
    parser = main.build_parser()

    args = parser.parse_args(['crawl', 'https://example.com/', '--mode', 'auto', '-d', '1'])
    assert (args.command, args.url, args.mode, args.depth) == ('crawl', 'https://example.com/', 'auto', 1)

    args = parser.parse_args(['--config', 'other.yaml', 'check-feeds', '--threshold', '3'])
    assert (args.config, args.command, args.threshold) == ('other.yaml', 'check-feeds', 3.0)

    with pytest.raises(SystemExit):
        parser.parse_args(['crawl', 'https://example.com/', '--mode', 'turbo'])


def test_invalid_url_prints_failure_envelope(isolated_run, capsys):
    exit_code = main.main(['crawl', 'not a url'])

    output = json.loads(capsys.readouterr().out)
    assert exit_code == 1
    assert output == {'success': False, 'error': 'Invalid URL provided'}


def test_check_feeds_without_feeds_succeeds(isolated_run, capsys):
    exit_code = main.main(['check-feeds'])

    output = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert output['feeds_checked'] == 0
    assert output['storage']['success'] is True
    assert (isolated_run / 'data' / 'rss_checks').is_dir()


def test_bad_config_exits_with_error(isolated_run, capsys):
    (isolated_run / 'config.yaml').write_text('scraper:\n  max_deph: 3\n')

    assert main.main(['crawl', 'https://example.com/']) == 1
    assert 'max_deph' in capsys.readouterr().err
