"""
Database client configuration.
Uses Supabase (PostgreSQL) for the email_logs and api_keys tables.
"""

import os
import uuid
from supabase import create_client, Client
from dotenv import load_dotenv

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")

if not SUPABASE_URL or not SUPABASE_SERVICE_KEY:
    raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set in environment variables")

# Service-role client. Both tables hold server-only data (key hashes,
# recipient addresses), so nothing goes through the anon key.
supabase_admin: Client = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)

EMAIL_LOGS_TABLE = "email_logs"
API_KEYS_TABLE = "api_keys"


def is_valid_id(value: str) -> bool:
    """Row ids are uuid columns; anything else cannot match a row."""
    try:
        uuid.UUID(value)
    except (ValueError, TypeError, AttributeError):
        return False
    return True
