from __future__ import annotations

from unittest.mock import patch

from tablerate.__main__ import main
from tablerate.app import app


@patch("tablerate.__main__.uvicorn.run")
def test_main_serves_app(mock_run, monkeypatch):
    monkeypatch.setenv("HOST", "127.0.0.1")
    monkeypatch.setenv("PORT", "9001")

    main()

    mock_run.assert_called_once_with(app, host="127.0.0.1", port=9001)
