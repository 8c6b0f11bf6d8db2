import logging


class ProfessionalFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(
            fmt="%(asctime)s | %(shortlevel)-3s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        self.shortmap = {
            "DEBUG": "DBG",
            "INFO": "INF",
            "WARNING": "WRN",
            "ERROR": "ERR",
            "CRITICAL": "CRT",
        }

    def format(self, record) -> str:
        record.shortlevel = self.shortmap.get(record.levelname, "???")
        return super().format(record)


def configure_logging(level=logging.WARNING) -> logging.Logger:
    """Install the ledger formatter on the root logger once and return it."""
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if not any(
        isinstance(h.formatter, ProfessionalFormatter) for h in root_logger.handlers
    ):
        handler = logging.StreamHandler()
        handler.setFormatter(ProfessionalFormatter())
        root_logger.addHandler(handler)
    # Third-party chatter stays at WARNING unless we are debugging
    if level > logging.DEBUG:
        for noisy in ("yfinance", "sqlalchemy.engine", "urllib3"):
            logging.getLogger(noisy).setLevel(logging.WARNING)
    return root_logger
