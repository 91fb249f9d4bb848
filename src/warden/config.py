import os
import dotenv
import logging

from warden.governance import reviews

dotenv.load_dotenv()

GITHUB_WEBHOOK_SECRET = os.environ.get("GITHUB_WEBHOOK_SECRET")
GITHUB_PRIVATE_KEY = os.environ.get("GITHUB_PRIVATE_KEY")
GITHUB_APP_ID = int(os.environ.get("GITHUB_APP_ID", 0))

OVERRIDE_LOGGING = logging.getLevelName(os.environ.get("OVERRIDE_LOGGING", "WARNING"))

TELEGRAM_TOKEN = os.environ.get("TELEGRAM_TOKEN")
TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID")
# Identical notifications are sent at most once per this many seconds.
NOTIFY_REPEAT_TTL = int(os.environ.get("NOTIFY_REPEAT_TTL", 3600))

BOT_USER_NAME = os.environ.get("BOT_USER_NAME", "merge-warden[bot]")

EXCLUDED_AUTHORS = os.environ.get(
    "EXCLUDED_AUTHORS", "roller-bot[bot],electron-bot"
).split(",")

# seconds
MINIMUM_PATCH_OPEN_TIME = float(os.environ.get("MINIMUM_PATCH_OPEN_TIME", 60 * 60 * 24))
MINIMUM_MINOR_OPEN_TIME = float(
    os.environ.get("MINIMUM_MINOR_OPEN_TIME", 60 * 60 * 24 * 7)
)
MINIMUM_MAJOR_OPEN_TIME = float(
    os.environ.get("MINIMUM_MAJOR_OPEN_TIME", 60 * 60 * 24 * 14)
)

# Policy constant, exposed read-only.
APPROVAL_THRESHOLD = reviews.APPROVAL_THRESHOLD

API_REVIEW_TEAM = os.environ.get("API_REVIEW_TEAM", "wg-api")
DEPRECATION_REVIEW_TEAM = os.environ.get("DEPRECATION_REVIEW_TEAM") or None

DEFAULT_BRANCH_ONLY = os.environ.get("DEFAULT_BRANCH_ONLY", "true") == "true"

RECONCILE_ENABLED = os.environ.get("RECONCILE_ENABLED", "true") == "true"
RECONCILE_INTERVAL = float(os.environ.get("RECONCILE_INTERVAL", 300))

ACCESS_TOKEN_TTL = float(os.environ.get("ACCESS_TOKEN_TTL", 300))

ROSTER_TTL = float(os.environ.get("ROSTER_TTL", RECONCILE_INTERVAL))

DRY_RUN = os.environ.get("DRY_RUN", "false") == "true"
