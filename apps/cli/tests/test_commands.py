"""Tests for CLI commands."""

from unittest.mock import patch

from src import __version__
from src.main import app
from packages.core import ExportFormat, MediaNotFoundError, TranscodeError


class TestMain:
    """Tests for the top-level app."""

    def test_version(self, cli_runner):
        """Test --version prints the version and exits."""
        result = cli_runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"Splice CLI v{__version__}" in result.output

    def test_help_lists_commands(self, cli_runner):
        """Test every command is registered."""
        result = cli_runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("export", "plan", "probe"):
            assert command in result.output


class TestPlanCommand:
    """Tests for the plan command."""

    def test_plan(self, cli_runner, sequence_file):
        """Test the timeline and totals are printed."""
        result = cli_runner.invoke(app, ["plan", str(sequence_file)])

        assert result.exit_code == 0
        assert "intro" in result.output
        assert "main" in result.output
        assert "105 frames" in result.output

    def test_plan_fps(self, cli_runner, sequence_file):
        """Test frame counts follow --fps."""
        result = cli_runner.invoke(app, ["plan", str(sequence_file), "--fps", "10"])

        assert result.exit_code == 0
        assert "35 frames" in result.output

    def test_plan_invalid_fps(self, cli_runner, sequence_file):
        """Test a non-positive fps is rejected."""
        result = cli_runner.invoke(app, ["plan", str(sequence_file), "--fps", "0"])

        assert result.exit_code == 1
        assert "fps must be positive" in result.output

    def test_plan_missing_file(self, cli_runner, tmp_path):
        """Test a missing document is an error."""
        result = cli_runner.invoke(app, ["plan", str(tmp_path / "nope.json")])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_plan_invalid_sequence(self, cli_runner, tmp_path):
        """Test an invalid clip is reported."""
        path = tmp_path / "bad.json"
        path.write_text('{"clips": [{"id": "a", "source": "a.mp4", "duration": 1, "effects": {"speed": 0}}]}')

        result = cli_runner.invoke(app, ["plan", str(path)])

        assert result.exit_code == 1
        assert "speed must be > 0" in result.output


class TestExportCommand:
    """Tests for the export command."""

    def test_export_gif(self, cli_runner, sequence_file, tmp_path, gif_result):
        """Test a successful export writes the output file."""
        output = tmp_path / "out" / "preview.gif"

        with patch("src.commands.export.export_sequence") as mock_export:
            mock_export.return_value = gif_result
            result = cli_runner.invoke(app, [
                "export", str(sequence_file), "-o", str(output),
                "--width", "320", "--height", "180", "--fps", "12",
            ])

        assert result.exit_code == 0
        assert output.read_bytes() == b"GIF89a-fake"
        assert "Saved to" in result.output

        sequence, settings = mock_export.call_args.args
        assert [clip.id for clip in sequence] == ["intro", "main"]
        assert settings.format == ExportFormat.GIF
        assert settings.resolution == (320, 180)
        assert settings.fps == 12

    def test_export_reports_progress(self, cli_runner, sequence_file, tmp_path, gif_result):
        """Test the progress callback is wired to the export."""
        seen = []

        def fake_export(sequence, settings, on_progress=None):
            for percent in (0, 20, 100):
                on_progress(percent)
                seen.append(percent)
            return gif_result

        with patch("src.commands.export.export_sequence", side_effect=fake_export):
            result = cli_runner.invoke(app, ["export", str(sequence_file), "-o", str(tmp_path / "a.gif")])

        assert result.exit_code == 0
        assert seen == [0, 20, 100]

    def test_format_option_overrides_extension(self, cli_runner, sequence_file, tmp_path, gif_result):
        """Test --format wins over the output extension."""
        with patch("src.commands.export.export_sequence") as mock_export:
            mock_export.return_value = gif_result
            result = cli_runner.invoke(app, [
                "export", str(sequence_file), "-o", str(tmp_path / "clip.bin"), "--format", "webm",
            ])

        assert result.exit_code == 0
        assert mock_export.call_args.args[1].format == ExportFormat.WEBM

    def test_unsupported_format(self, cli_runner, sequence_file, tmp_path):
        """Test an unknown extension is rejected before exporting."""
        with patch("src.commands.export.export_sequence") as mock_export:
            result = cli_runner.invoke(app, ["export", str(sequence_file), "-o", str(tmp_path / "out.mov")])

        assert result.exit_code == 1
        assert "unsupported format" in result.output
        mock_export.assert_not_called()

    def test_invalid_quality(self, cli_runner, sequence_file, tmp_path):
        """Test out-of-range quality is rejected."""
        result = cli_runner.invoke(app, [
            "export", str(sequence_file), "-o", str(tmp_path / "out.mp4"), "--quality", "150",
        ])

        assert result.exit_code == 1
        assert "quality must be within 0-100" in result.output

    def test_export_failure(self, cli_runner, sequence_file, tmp_path):
        """Test an export error exits non-zero without writing output."""
        output = tmp_path / "out.mp4"

        with patch("src.commands.export.export_sequence") as mock_export:
            mock_export.side_effect = TranscodeError("ffmpeg exited with an error", returncode=1)
            result = cli_runner.invoke(app, ["export", str(sequence_file), "-o", str(output)])

        assert result.exit_code == 1
        assert "Video encoding failed" in result.output
        assert not output.exists()


class TestProbeCommand:
    """Tests for the probe command."""

    def test_probe(self, cli_runner, media_info):
        """Test media properties are printed."""
        with patch("src.commands.probe.probe_media") as mock_probe:
            mock_probe.return_value = media_info
            result = cli_runner.invoke(app, ["probe", "clip.mp4"])

        assert result.exit_code == 0
        assert "640x360" in result.output
        assert "30.00 fps" in result.output

    def test_probe_missing(self, cli_runner):
        """Test a missing file exits non-zero."""
        with patch("src.commands.probe.probe_media") as mock_probe:
            mock_probe.side_effect = MediaNotFoundError("missing.mp4")
            result = cli_runner.invoke(app, ["probe", "missing.mp4"])

        assert result.exit_code == 1
        assert "Media not found" in result.output
