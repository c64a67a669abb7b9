"""Tests for structured logging setup."""

import structlog

from shared.logging import REDACTED, redact_sensitive, setup_logging


class TestRedaction:
    """Tests for masking secrets in log events."""

    def test_top_level_keys_masked(self):
        event = redact_sensitive(None, "info", {
            "event": "Connecting",
            "auth_token": "secret",
            "server_url": "http://localhost:3001/mcp",
        })

        assert event == {
            "event": "Connecting",
            "auth_token": REDACTED,
            "server_url": "http://localhost:3001/mcp",
        }

    def test_tool_arguments_masked(self):
        """Test that a customer PIN inside tool arguments never reaches the log."""
        event = redact_sensitive(None, "debug", {
            "event": "Tool arguments",
            "tool": "verify_customer_pin",
            "arguments": {"email": "ada@example.com", "PIN": "4321"},
        })

        assert event["arguments"] == {"email": "ada@example.com", "PIN": REDACTED}
        assert event["tool"] == "verify_customer_pin"

    def test_setup_installs_redaction(self):
        try:
            setup_logging("DEBUG", json_output=True)
            processors = structlog.get_config()["processors"]

            assert redact_sensitive in processors
            # Masking happens before rendering
            assert processors.index(redact_sensitive) < len(processors) - 1
        finally:
            structlog.reset_defaults()
