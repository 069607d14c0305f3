"""Self-running test suites (``python -m dpg_control.common.testers.<suite>``), also collected by pytest."""
