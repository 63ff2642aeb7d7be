"""Tests for the podboot command line."""

from unittest.mock import patch

import pytest

from podboot import cli


@pytest.fixture
def workspace(isolated_env, tmp_path):
    isolated_env.setenv("WORKSPACE_DIR", str(tmp_path))
    return tmp_path


class TestBuildParser:
    """Tests for argument parsing."""

    def test_defaults(self):
        args = cli.build_parser().parse_args([])

        assert not args.no_follow
        assert not args.print_args
        assert not args.verbose
        assert not args.quiet

    def test_verbose_and_quiet_exclusive(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["-v", "-q"])


class TestMain:
    """Tests for cli.main."""

    def test_runs_entrypoint(self, workspace):
        with patch("podboot.cli.run_entrypoint", return_value=0) as mock_run:
            assert cli.main([]) == 0

        config = mock_run.call_args[0][0]
        assert config.workspace_dir == workspace
        assert mock_run.call_args[1]["follow"] is True

    def test_no_follow(self, workspace):
        with patch("podboot.cli.run_entrypoint", return_value=0) as mock_run:
            cli.main(["--no-follow"])

        assert mock_run.call_args[1]["follow"] is False

    def test_exit_status_passed_through(self, workspace):
        with patch("podboot.cli.run_entrypoint", return_value=1):
            assert cli.main([]) == 1

    def test_verbose_sets_debug(self, workspace):
        with patch("podboot.cli.run_entrypoint", return_value=0) as mock_run:
            cli.main(["-v"])

        assert mock_run.call_args[0][0].log_level == "DEBUG"

    def test_time_enables_timer(self, workspace):
        with patch("podboot.cli.run_entrypoint", return_value=0) as mock_run:
            cli.main(["--time"])

        assert mock_run.call_args[1]["timer"].enabled

    def test_print_args(self, workspace, capsys):
        args_file = workspace / "runpod-slim" / "comfyui_args.txt"
        args_file.parent.mkdir()
        args_file.write_text("--foo\n# comment\n--bar 1\n")

        with patch("podboot.cli.run_entrypoint") as mock_run:
            assert cli.main(["--print-args"]) == 0

        mock_run.assert_not_called()
        assert capsys.readouterr().out.strip() == (
            "python main.py --listen 0.0.0.0 --port 8188 --foo --bar 1"
        )

    def test_print_env(self, workspace, capsys):
        with patch.dict("os.environ", {"RUNPOD_POD_ID": "abc", "RUNPOD_BAD": "a\nb"}):
            with patch("podboot.cli.run_entrypoint") as mock_run:
                assert cli.main(["--print-env"]) == 0

        captured = capsys.readouterr()
        mock_run.assert_not_called()
        assert "export RUNPOD_POD_ID=abc" in captured.out.splitlines()
        assert "RUNPOD_BAD" not in captured.out
        assert "# skipped RUNPOD_BAD" in captured.err

    def test_invalid_overlay(self, workspace, isolated_env, capsys):
        overlay = workspace / "bad.yaml"
        overlay.write_text("- not\n- a mapping\n")
        isolated_env.setenv("PODBOOT_CONFIG", str(overlay))

        with patch("podboot.cli.run_entrypoint") as mock_run:
            assert cli.main([]) == 1

        mock_run.assert_not_called()
        assert "Invalid configuration" in capsys.readouterr().err
