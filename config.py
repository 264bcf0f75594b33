"""
config.py — environment-driven settings
========================================
Values come from the process environment, with a local ``.env`` loaded
first when present.
"""

import logging
import os

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Consecutive fully-blank rows that end a table when no end keyword is found
BLANK_ROW_RUN = int(os.getenv("BLANK_ROW_RUN", "2"))

# Rows from the top of a sheet scanned for document metadata
METADATA_SCAN_ROWS = int(os.getenv("METADATA_SCAN_ROWS", "5"))

# Rows from the top of a sheet scanned when guessing its layout
DETECT_SCAN_ROWS = int(os.getenv("DETECT_SCAN_ROWS", "25"))

MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "50"))
PORT = int(os.environ.get("PORT", 5000))


def configure_logging(level=None):
    """Root logging setup for the API server and ad-hoc scripts."""
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
