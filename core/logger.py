"""
Configure the logger

Everything in the service logs through the "fra" logger; third-party
libraries that are chatty at INFO are held at WARNING.
"""

import logging
from core.config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "httpx", "multipart")

logging.basicConfig(level=get_settings().LOG_LEVEL, format=LOG_FORMAT)
for name in QUIET_LOGGERS:
    logging.getLogger(name).setLevel(logging.WARNING)

logger = logging.getLogger("fra")
