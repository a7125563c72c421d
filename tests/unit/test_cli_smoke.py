import click
import pytest
from click.testing import CliRunner

from sptf.cli import cli
from sptf.cli.catalog_cmds import resolve_id
from sptf.config import load_typed_config


def test_cli_version():
    runner = CliRunner()
    result = runner.invoke(cli, ['--version'])
    assert result.exit_code == 0
    assert 'sptf-webapi' in result.output


def test_cli_help_lists_commands():
    result = CliRunner().invoke(cli, ['--help'])
    assert result.exit_code == 0
    for name in ('login', 'logout', 'status', 'redirect-uri', 'playlist', 'top-tracks', 'cache-clear'):
        assert name in result.output


def test_parse_command():
    result = CliRunner().invoke(cli, ['parse', 'https://open.spotify.com/album/abc123?si=x'])
    assert result.exit_code == 0, result.output
    assert 'type:   album' in result.output
    assert 'uri:    spotify:album:abc123' in result.output
    assert 'scheme: sptf://spotify:album:abc123' in result.output


def test_parse_command_rejects_garbage():
    result = CliRunner().invoke(cli, ['parse', 'spotify:track'])
    assert result.exit_code != 0
    assert 'Invalid URI' in result.output


def test_redirect_uri_from_config(test_config):
    test_config['spotify']['redirect_port'] = 8123
    cfg = load_typed_config(test_config)
    result = CliRunner().invoke(cli, ['redirect-uri'], obj=cfg)
    assert result.exit_code == 0
    assert result.output.splitlines()[0] == 'http://127.0.0.1:8123/callback'


def test_logout_and_status_without_login(test_config, tmp_path):
    cfg = load_typed_config(test_config)
    runner = CliRunner()
    result = runner.invoke(cli, ['logout'], obj=cfg)
    assert result.exit_code == 0, result.output
    assert 'Logged out.' in result.output
    result = runner.invoke(cli, ['status'], obj=cfg)
    assert result.exit_code == 0, result.output
    assert 'Not logged in.' in result.output
    assert 'Cached tracks: 0' in result.output


def test_track_lookup_without_login_reports_error(test_config):
    cfg = load_typed_config(test_config)
    result = CliRunner().invoke(cli, ['track', 'abc123'], obj=cfg)
    assert result.exit_code == 1
    assert 'Error:' in result.output


def test_cache_clear(test_config, tmp_path):
    cfg = load_typed_config(test_config)
    cache_dir = tmp_path / 'data' / 'cache' / 'tracks'
    cache_dir.mkdir(parents=True)
    (cache_dir / 't1.json').write_text('{}', encoding='utf-8')
    result = CliRunner().invoke(cli, ['cache-clear', '--yes'], obj=cfg)
    assert result.exit_code == 0, result.output
    assert not cache_dir.exists()


@pytest.mark.parametrize('text,expected', [
    ('abc123', 'abc123'),
    ('spotify:track:abc123', 'abc123'),
    ('sptf://spotify:track:abc123', 'abc123'),
])
def test_resolve_id(text, expected):
    assert resolve_id(text, 'track') == expected


def test_resolve_id_wrong_type():
    with pytest.raises(click.BadParameter):
        resolve_id('spotify:album:abc123', 'track')
