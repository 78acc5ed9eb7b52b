import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent

# Static site the service binds pages from
SITE_ROOT = Path(os.getenv("SITE_ROOT", str(BASE_DIR / "site"))).resolve()

ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()]
BACKEND_API_KEY = os.getenv("BACKEND_API_KEY", "")  # required by /render (X-API-Key)

RATE_LIMIT_PER_MIN = int(os.getenv("RATE_LIMIT_PER_MIN", "60"))
HTTP_TIMEOUT_S     = float(os.getenv("HTTP_TIMEOUT_S", "10"))

# Menu rendering defaults
MENU_PREVIEW_LIMIT  = int(os.getenv("MENU_PREVIEW_LIMIT", "6"))
MENU_IMAGE_FALLBACK = os.getenv("MENU_IMAGE_FALLBACK", "path").strip().lower()  # path | placeholder
MENU_DEFAULT_IMAGE  = os.getenv("MENU_DEFAULT_IMAGE", "./assets/images/menu/menu-1.png")
