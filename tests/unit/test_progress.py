from __future__ import annotations

from unittest.mock import Mock, patch

from hrsync.services.progress import ChunkProgress, is_tty_enabled


def test_is_tty_enabled_returns_stdout_isatty():
    with patch("sys.stdout.isatty", return_value=True):
        assert is_tty_enabled() is True
    with patch("sys.stdout.isatty", return_value=False):
        assert is_tty_enabled() is False


def test_disabled_without_tty():
    with patch("hrsync.services.progress.is_tty_enabled", return_value=False):
        progress = ChunkProgress(3)
        progress.start_row(1, "E1")
        progress.finish_row(status="COMPLETED")
        progress.close()
    assert progress.enabled is False
    assert progress.pbar is None
    assert progress.current_row == 1


def test_bar_updates_with_tty():
    with patch("hrsync.services.progress.is_tty_enabled", return_value=True), \
         patch("hrsync.services.progress.tqdm") as mock_tqdm:
        pbar = Mock()
        mock_tqdm.return_value = pbar
        with ChunkProgress(2, description="Uploading rows") as progress:
            progress.start_row(7, "E7")
            pbar.set_description.assert_called_with("Uploading rows (#7 E7)")
            progress.finish_row(status="FAILED")
        mock_tqdm.assert_called_once()
        assert mock_tqdm.call_args.kwargs["total"] == 2
        assert mock_tqdm.call_args.kwargs["unit"] == "row"
        pbar.update.assert_called_once_with(1)
        pbar.set_postfix.assert_called_once_with(status="FAILED")
        pbar.close.assert_called_once()
