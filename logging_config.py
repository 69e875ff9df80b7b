# logging_config.py
import logging
import os
import sys

import structlog

# --- 日誌設定 ---
# LOG_LEVEL: DEBUG / INFO / WARNING / ERROR
# LOG_JSON: 正式環境設為 true，輸出 JSON 方便丟給 log 收集系統
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_JSON = os.getenv("LOG_JSON", "false").lower() in ("1", "true", "yes")


def configure_logging(level: str = LOG_LEVEL, json_output: bool = LOG_JSON) -> None:
    """
    在伺服器啟動時呼叫一次。

    各模組只要 structlog.get_logger(__name__) 就能拿到 logger，
    事件名稱用 snake_case，例如 logger.info("order_completed", order_id=1)。
    """
    log_level = getattr(logging, level, logging.INFO)

    # 讓 uvicorn 等套件的標準 logging 也走同一個輸出
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
