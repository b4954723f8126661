import json
import logging
import sys
from typing import TYPE_CHECKING

from .config import BotConfig

if TYPE_CHECKING:
    from .router import CommandOutcome

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def build_logger(config: BotConfig) -> logging.Logger:
    """
    Configure the kotatsu logger tree once. Command decisions additionally go
    to a JSON-lines file when log_path is set.
    """
    root = logging.getLogger("kotatsu")
    if root.handlers:
        return logging.getLogger("kotatsu.audit")
    level = getattr(logging, config.log_level, logging.INFO)
    root.setLevel(level)
    stream = logging.StreamHandler(sys.stdout)
    stream.setLevel(level)
    stream.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
    root.addHandler(stream)

    audit = logging.getLogger("kotatsu.audit")
    # Decisions are always recorded, whatever log_level says.
    audit.setLevel(logging.INFO)
    if config.log_path is not None:
        config.log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(config.log_path, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(asctime)s %(message)s", datefmt=_DATEFMT))
        audit.addHandler(handler)
    return audit


def log_decision(logger: logging.Logger, outcome: "CommandOutcome") -> None:
    logger.info(json.dumps(outcome.to_dict(), sort_keys=True))
