#!/usr/bin/env python3
"""Blocket Notifier — Application Runner.

Performs pre-flight checks and launches the main application.

Usage:
    python scripts/run.py
    python scripts/run.py --once
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

BANNER = r"""
╔══════════════════════════════════════════════════════════╗
║                                                          ║
║   ██████╗ ██╗      ██████╗  ██████╗██╗  ██╗███████╗████╗ ║
║   ██╔══██╗██║     ██╔═══██╗██╔════╝██║ ██╔╝██╔════╝╚██╔╝ ║
║   ██████╔╝██║     ██║   ██║██║     █████╔╝ █████╗   ██║  ║
║   ██╔══██╗██║     ██║   ██║██║     ██╔═██╗ ██╔══╝   ██║  ║
║   ██████╔╝███████╗╚██████╔╝╚██████╗██║  ██╗███████╗ ██║  ║
║   ╚═════╝ ╚══════╝ ╚═════╝  ╚═════╝╚═╝  ╚═╝╚══════╝ ╚═╝  ║
║                                                          ║
║              Blocket Notifier v1.0                       ║
║         Rental Listing Monitoring                        ║
║                                                          ║
╚══════════════════════════════════════════════════════════╝
"""

REQUIRED_FILES = [
    "config/settings.yaml",
]

OPTIONAL_ENV_VARS = {
    "LEADS_ACCESS_TOKEN": "lead forwarding disabled",
    "SMS_GATEWAY_URL": "SMS notifications disabled",
    "EMAIL_GATEWAY_URL": "e-mail notifications disabled",
    "TELEGRAM_BOT_TOKEN": "operator alerts disabled",
}


def _mask(val: str) -> str:
    return val[:6] + "..." + val[-4:] if len(val) > 10 else "***"


def preflight_checks() -> bool:
    """Run pre-flight checks before starting the application.

    Checks:
      - .env file exists (optional integrations read from it)
      - Required config files exist
      - data/ and logs/ directories exist (creates them)

    Returns:
        True if all checks pass, False otherwise.
    """
    os.chdir(str(PROJECT_ROOT))
    ok = True

    env_path = PROJECT_ROOT / ".env"
    if not env_path.exists():
        print("⚠️  .env file not found, running with defaults only")
        print("   Copy .env.example to .env to enable integrations.")
    else:
        from dotenv import load_dotenv
        load_dotenv(env_path)
        print("✅ .env loaded")

    for var, consequence in OPTIONAL_ENV_VARS.items():
        val = os.environ.get(var, "")
        if val:
            print(f"✅ {var} = {_mask(val)}")
        else:
            print(f"⚠️  {var} not set ({consequence})")

    for f in REQUIRED_FILES:
        path = PROJECT_ROOT / f
        if not path.exists():
            print(f"❌ {f} not found!")
            ok = False
        else:
            print(f"✅ {f} exists")

    for d in ("data", "logs"):
        (PROJECT_ROOT / d).mkdir(exist_ok=True)
        print(f"✅ {d}/ directory ready")

    return ok


def main() -> None:
    """Entry point: run checks then start the application."""
    print(BANNER)

    print("═══ Pre-flight Checks ═══\n")
    if not preflight_checks():
        print("\n❌ Pre-flight checks failed! Fix the issues above and try again.")
        sys.exit(1)

    print("\n✅ All checks passed!\n")
    print("═══ Starting Blocket Notifier ═══\n")

    from blocket_notifier.main import main as app_main
    app_main(sys.argv[1:])


if __name__ == "__main__":
    main()
