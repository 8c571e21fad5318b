"""
Logging utilities.
"""

import sys
import logging
from pathlib import Path
from typing import Optional
from datetime import datetime


ROOT_LOGGER = "gwas_sim"


def setup_logger(
    name: str = ROOT_LOGGER,
    log_file: Optional[str] = None,
    level: str = "INFO",
    format_str: Optional[str] = None,
) -> logging.Logger:
    """
    Set up a logger with console and optional file handlers.
    
    Parameters
    ----------
    name : str
        Logger name.
    log_file : str, optional
        Path to log file.
    level : str
        Logging level (DEBUG, INFO, WARNING, ERROR).
    format_str : str, optional
        Log message format.
        
    Returns
    -------
    logging.Logger
        Configured logger.
    """
    if format_str is None:
        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    
    # Create logger
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))
    
    # Clear existing handlers
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []
    
    formatter = logging.Formatter(format_str)
    
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    
    # File handler (optional)
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    
    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """
    Get a logger by name.
    
    Component loggers are children of the package logger, so a single
    ``setup_logger()`` call configures all of them.
    
    Parameters
    ----------
    name : str
        Logger name.
        
    Returns
    -------
    logging.Logger
        Logger instance.
    """
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


class ProgressLogger:
    """
    Simple progress logger for long-running loops (e.g. over LD blocks).
    """
    
    def __init__(
        self,
        total: int,
        desc: str = "Processing",
        logger: Optional[logging.Logger] = None,
        log_every: int = 100,
        level: int = logging.DEBUG,
    ):
        """
        Initialize progress logger.
        
        Parameters
        ----------
        total : int
            Total number of items.
        desc : str
            Description of the task.
        logger : logging.Logger, optional
            Logger to use.
        log_every : int
            Log progress every N items.
        level : int
            Logging level for progress messages.
        """
        self.total = total
        self.desc = desc
        self.logger = logger or get_logger()
        self.log_every = max(int(log_every), 1)
        self.level = level
        self.current = 0
        self.start_time = datetime.now()
    
    def update(self, n: int = 1):
        """Update progress by n items."""
        self.current += n
        
        if self.current % self.log_every == 0 or self.current == self.total:
            elapsed = (datetime.now() - self.start_time).total_seconds()
            rate = self.current / elapsed if elapsed > 0 else 0
            pct = 100 * self.current / self.total if self.total else 100.0
            
            self.logger.log(
                self.level,
                f"{self.desc}: {self.current}/{self.total} ({pct:.1f}%) - "
                f"{rate:.1f} items/sec"
            )
    
    def close(self):
        """Close progress logger and log a summary."""
        elapsed = (datetime.now() - self.start_time).total_seconds()
        self.logger.log(
            self.level,
            f"{self.desc} complete: {self.current} items in {elapsed:.1f}s"
        )
