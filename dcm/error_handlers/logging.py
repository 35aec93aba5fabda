"""
Logging utilities for the placement compiler
Provides centralized logging setup and compile/solve phase logging
"""
import logging
import traceback
from datetime import datetime
import os


LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def setup_logging(config):
    """Configure the ``dcm`` logger from a Config class"""
    log_level = getattr(logging, str(getattr(config, 'LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    log_file = getattr(config, 'LOG_FILE', '')

    formatter = logging.Formatter(LOG_FORMAT)
    logger = logging.getLogger('dcm')
    logger.setLevel(log_level)

    # Replace handlers from a previous call instead of stacking them
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(os.path.abspath(log_file))
        os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def new_error_id():
    """Timestamp-based identifier used to correlate error log lines"""
    return datetime.utcnow().strftime('%Y%m%d_%H%M%S_%f')


def handle_compile_error(operation, error, context=None):
    """Centralized compile/solve error logging"""
    logger = logging.getLogger('dcm.compiler')
    error_id = new_error_id()

    log_message = f"COMPILE ERROR [{error_id}] in {operation}: {str(error)}"
    if context:
        log_message += f" | Context: {context}"

    logger.error(log_message)
    logger.debug(f"COMPILE ERROR TRACEBACK [{error_id}]: {traceback.format_exc()}")

    return {
        'error_id': error_id,
        'operation': operation,
        'error_message': str(error),
        'timestamp': datetime.utcnow().isoformat()
    }


class CompileLogger:
    """Specialized logger for compile and solve phases"""

    def __init__(self, name='dcm.compiler'):
        self.logger = logging.getLogger(name)

    def phase_started(self, phase, details=None):
        """Log phase start"""
        message = f"Started: {phase}"
        if details:
            message += f" | {details}"
        self.logger.info(message)

    def phase_completed(self, phase, stats=None):
        """Log phase completion"""
        message = f"Completed: {phase}"
        if stats:
            message += f" | Stats: {stats}"
        self.logger.info(message)

    def phase_failed(self, phase, error, context=None):
        """Log phase failure"""
        error_details = handle_compile_error(phase, error, context)
        return error_details['error_id']

    def phase_warning(self, phase, message):
        """Log phase warnings"""
        self.logger.warning(f"{phase}: {message}")


# Global compile logger instance
compile_logger = CompileLogger()
