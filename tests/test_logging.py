import structlog

from completions_client.config import ClientOptions
from completions_client.logging import configure_logging_for, redact


def test_redacts_known_secret_inside_strings():
    out = redact("sending key sk-live-123 now", secrets=["sk-live-123"])
    assert out == "sending key [REDACTED] now"


def test_redacts_bearer_tokens():
    assert redact("Authorization: Bearer abcdef123456", secrets=[]) == "Authorization: Bearer [REDACTED]"


def test_redacts_sensitive_mapping_keys():
    out = redact({"X-Api-Key": "A", "nested": {"auth_token": "t", "model": "claude-2"}}, secrets=[])
    assert out == {"X-Api-Key": "[REDACTED]", "nested": {"auth_token": "[REDACTED]", "model": "claude-2"}}


def test_redacts_header_pairs():
    headers = [("Accept", "application/json"), ("X-Api-Key", "A"), ("Authorization", "Bearer tok")]
    assert redact(headers, secrets=[]) == [
        ("Accept", "application/json"),
        ("X-Api-Key", "[REDACTED]"),
        ("Authorization", "[REDACTED]"),
    ]


def test_configured_logger_never_prints_api_key(capsys):
    configure_logging_for(ClientOptions(api_key="sk-very-secret", log_format="json"))
    try:
        structlog.get_logger().info("completion_request_start", note="using sk-very-secret")
    finally:
        structlog.reset_defaults()

    out = capsys.readouterr().out
    assert "completion_request_start" in out
    assert "sk-very-secret" not in out


def test_configure_logging_for_applies_log_level(capsys):
    configure_logging_for(ClientOptions(log_level="WARNING", log_format="json"))
    try:
        logger = structlog.get_logger()
        logger.info("completion_request_start")
        logger.warning("completion_retry_scheduled", attempt=0)
    finally:
        structlog.reset_defaults()

    out = capsys.readouterr().out
    assert "completion_request_start" not in out
    assert "completion_retry_scheduled" in out


def test_package_exports_logging_setup():
    import completions_client

    assert completions_client.configure_logging_for is configure_logging_for
