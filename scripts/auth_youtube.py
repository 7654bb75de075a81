"""
One-off OAuth consent for the uploader.

Opens the Google consent page, then stores the resulting token where
uploader.get_valid_credentials() looks for it.

    python scripts/auth_youtube.py
"""

import os
import sys
import logging

from dotenv import load_dotenv
from google_auth_oauthlib.flow import InstalledAppFlow

load_dotenv(override=True)
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("auth_youtube")

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from uploader import CLIENT_SECRET_FILE, SCOPES, TOKEN_FILE


def main() -> int:
    if not os.path.exists(CLIENT_SECRET_FILE):
        logger.error(f"❌ {CLIENT_SECRET_FILE} not found. Download it from the Google Cloud Console.")
        return 1

    flow = InstalledAppFlow.from_client_secrets_file(CLIENT_SECRET_FILE, SCOPES)
    creds = flow.run_local_server(port=0, access_type="offline", prompt="consent")
    with open(TOKEN_FILE, "w", encoding="utf-8") as f:
        f.write(creds.to_json())
    logger.info(f"✅ Token saved to {TOKEN_FILE}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
