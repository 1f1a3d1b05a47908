"""
Cashback wallet backend.

Users submit proof of posted brand content, admins approve or reject it, and
approved cashback accrues to a wallet that can be withdrawn via UPI or bank.
"""
from pathlib import Path

from dotenv import load_dotenv

# Modules read os.getenv at import time, so the .env file is loaded first.
load_dotenv(dotenv_path=Path(__file__).parent / ".env")
