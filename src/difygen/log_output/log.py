import logging
import sys

class ColorFormatter(logging.Formatter):
    COLOR_MAP = {
        "SUCCESS": "\033[32m",
        "WARNING": "\033[33m",
        "INFO": "\033[34m",
        "ERROR": "\033[31m",
        "FAIL": "\033[31m",
    }
    STR_BOLD = "\033[1m"
    STR_RESET = "\033[0m"

    def format(self, record):
        levelname = record.levelname
        color = self.COLOR_MAP.get(levelname, "\033[31m")
        msg = super().format(record)
        return f"{self.STR_BOLD}{color}{levelname}: {msg}{self.STR_RESET}"

# ロガー設定（パイプライン全体で共有）
logger = logging.getLogger("difygen")
handler = logging.StreamHandler(sys.stdout)
formatter = ColorFormatter("%(message)s")
handler.setFormatter(formatter)
logger.handlers = [handler]
logger.setLevel(logging.INFO)

SUCCESS_LEVEL = 25
FAIL_LEVEL = 35
logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")
logging.addLevelName(FAIL_LEVEL, "FAIL")

log_is = True
def set_log_is(value: bool):
    global log_is
    log_is = value

def log(status: str, message: str) -> None:
    """
    パイプライン共通のログ出力関数
    status: success/info/warning/error/fail など
    未知のstatusはerrorとして扱う
    """
    if not log_is:
        return
    level_map = {
        "success": SUCCESS_LEVEL,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
        "fail": FAIL_LEVEL,
    }
    logger.log(level_map.get(status.lower(), logging.ERROR), message)
