import os
import re
import sys

from loguru import logger

# 32-byte hex blobs (private keys) and longer ciphertexts
_SECRET_HEX = re.compile(r"\b(0x)?[0-9a-fA-F]{64,}\b")


def _redact_secrets(record: dict) -> None:
    record["message"] = _SECRET_HEX.sub("<redacted>", record["message"])


def setup_logger(*, json_logs: bool = False, level: str = "INFO") -> None:
    """Configure loguru for the radar process.

    Console level controlled by LOG_LEVEL env (default: INFO).
    File always captures DEBUG for post-mortem analysis.
    Anything that looks like key material is masked before it reaches a sink;
    tx hashes are 64 hex chars too, so log them shortened (``tx[:18]``).
    """
    console_level = os.getenv("LOG_LEVEL", level).upper()
    logger.remove()
    logger.configure(patcher=_redact_secrets)

    if json_logs:
        logger.add(sys.stdout, serialize=True, level=console_level)
    else:
        logger.add(
            sys.stdout,
            format=(
                "<green>{time:HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
                "<level>{message}</level>"
            ),
            level=console_level,
            colorize=True,
        )

    logger.add(
        "logs/radar_{time:YYYY-MM-DD}.log",
        rotation="50 MB",
        retention="7 days",
        compression="gz",
        level="DEBUG",
        serialize=json_logs,
    )
