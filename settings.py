"""
Runtime configuration

Values come from environment variables, optionally loaded from a .env file.
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

# Fraction of the subtotal charged as tax (0.08 == 8%)
TAX_RATE = float(os.getenv("TAX_RATE", "0.08"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "console").lower()

PORT = int(os.getenv("PORT", 8000))
