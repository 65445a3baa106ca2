import json
import logging
import os
import sys


# 원장 로그에서 검색 키로 쓰는 extra 필드. 이 목록에 있는 값만 JSON 필드로 올린다.
LEDGER_EXTRA_FIELDS: tuple[str, ...] = (
    "user_id",
    "order_ref",
    "request_id",
    "error_code",
    "version",
    "event_id",
)


def setup_logger(name: str = "credit-ledger", level: str | None = None) -> logging.Logger:
    """서비스 로거와 루트 로거에 stdout JSON 핸들러를 건다.

    Args:
        name: 서비스 로거 이름. SERVICE_NAME 환경변수가 있으면 그 값을 쓴다.
        level: 로그 레벨. None 이면 LOG_LEVEL 환경변수, 그것도 없으면 INFO.

    Returns:
        설정된 서비스 로거
    """
    log_level = _resolve_level(level or os.getenv("LOG_LEVEL", "INFO"))
    handler = _build_json_handler(log_level)

    logger = logging.getLogger(os.getenv("SERVICE_NAME", name))
    logger.setLevel(log_level)
    # 재호출 시 중복 출력 방지
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False

    # 서비스 모듈은 logging.getLogger(__name__) 을 쓰므로 루트 로거에서 받는다.
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    return logger


def _resolve_level(level: str) -> int:
    return getattr(logging, level.upper(), logging.INFO)


def _build_json_handler(log_level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(JsonFormatter())
    return handler


class JsonFormatter(logging.Formatter):
    """한 레코드를 JSON 한 줄로 출력한다.

    기본 필드는 datetime, level, logger, message 이고, LEDGER_EXTRA_FIELDS 와
    service_name, exc_info 는 값이 있을 때만 붙는다.
    """

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        log_record: dict[str, object] = {
            "datetime": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in LEDGER_EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_record[key] = value

        service_name = getattr(record, "service_name", None) or os.getenv("SERVICE_NAME")
        if service_name:
            log_record["service_name"] = service_name

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)

        # ErrorCode, datetime 같은 값은 문자열로 내보낸다.
        return json.dumps(log_record, ensure_ascii=False, default=str)
