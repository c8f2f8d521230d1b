"""Command line tests."""

import json

import pytest

from main import build_parser, main


class TestParser:
    """Argument parsing."""

    def test_inspect_arguments(self):
        args = build_parser().parse_args(['inspect', 'a.png', 'b.png', '-r', 'golden.png'])
        assert args.command == 'inspect'
        assert args.images == ['a.png', 'b.png']
        assert args.reference == 'golden.png'

    def test_serve_arguments(self):
        args = build_parser().parse_args(['serve', '--api-port', '8181', '--no-trigger'])
        assert args.api_port == 8181
        assert args.no_trigger

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestInspectCommand:
    """The inspect subcommand."""

    def test_inspect_writes_csv(self, image_file, tmp_path, capsys):
        output = tmp_path / "out"
        code = main(['--no-log-file', 'inspect', str(image_file), '-o', str(output)])

        assert code == 0
        assert list((output / "csv").glob("inspection_*.csv"))
        assert "OK: 1" in capsys.readouterr().out

    def test_missing_image_fails(self, tmp_path):
        code = main(['--no-log-file', 'inspect', str(tmp_path / "none.png"), '--no-save'])
        assert code == 1

    def test_bad_reference(self, image_file, tmp_path):
        code = main(['--no-log-file', 'inspect', str(image_file), '--no-save',
                     '-r', str(tmp_path / "none.png")])
        assert code == 2

    def test_bad_config(self, image_file, tmp_path):
        config = tmp_path / "settings.json"
        config.write_text(json.dumps({'controller': {'min_defect_confidence': 5}}))
        assert main(['--no-log-file', '-c', str(config), 'inspect', str(image_file)]) == 2
