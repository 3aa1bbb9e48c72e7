"""
Tests for logging setup.
"""

from unittest.mock import patch

from resilient_socket.logger_config import setup_logging


def test_console_only():
    with patch("resilient_socket.logger_config.logger") as mock_logger:
        setup_logging("debug")

    mock_logger.remove.assert_called_once()
    assert mock_logger.add.call_count == 1
    assert mock_logger.add.call_args[1]["level"] == "DEBUG"


def test_with_log_files(tmp_path):
    with patch("resilient_socket.logger_config.logger") as mock_logger:
        setup_logging("INFO", str(tmp_path))

    assert mock_logger.add.call_count == 3
    sinks = [str(call[0][0]) for call in mock_logger.add.call_args_list[1:]]
    assert sinks[0].endswith("client.log")
    assert sinks[1].endswith("error.log")
    assert mock_logger.add.call_args_list[2][1]["level"] == "ERROR"
