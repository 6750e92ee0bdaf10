"""Logging configuration with optional CloudWatch support."""

import logging
import os

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_cloudwatch_logging(service_name: str) -> None:
    """Configure root logging, shipping to CloudWatch when enabled.

    Args:
        service_name: Name of the service, used as the log stream (e.g. "gateway")

    Environment variables:
        LOG_LEVEL: Root log level name (default: "INFO")
        ENABLE_CLOUDWATCH: Set to "true" to enable CloudWatch logging
        CLOUDWATCH_LOG_GROUP: Log group name (default: "radio-chat")
        AWS_REGION: AWS region (default: "us-east-1")
    """
    log_group = os.environ.get("CLOUDWATCH_LOG_GROUP", "radio-chat")
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    logger = logging.getLogger()
    logger.setLevel(level)
    logger.handlers.clear()

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(console)

    if os.environ.get("ENABLE_CLOUDWATCH", "").lower() != "true":
        return

    try:
        import watchtower

        cw_handler = watchtower.CloudWatchLogHandler(
            log_group_name=log_group,
            log_stream_name=service_name,
            use_queues=True,
            create_log_group=True,
        )
    except ImportError:
        logger.warning("watchtower not installed, CloudWatch logging disabled")
        return
    except Exception as e:
        logger.warning("Failed to initialize CloudWatch logging: %s", e)
        return

    cw_handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(cw_handler)
    logger.info(
        "CloudWatch logging enabled: group=%s, stream=%s, region=%s",
        log_group,
        service_name,
        os.environ.get("AWS_REGION", "us-east-1"),
    )
