#!/usr/bin/env python3
"""Setup script for Price Tracker."""

import os
import shutil
import subprocess
import sys
from pathlib import Path


def main():
    """Run setup tasks."""
    print("=" * 80)
    print("Price Tracker - Setup")
    print("=" * 80)

    if sys.version_info < (3, 11):
        print("Error: Python 3.11 or higher is required")
        sys.exit(1)

    print("\n✓ Python version check passed")

    print("\nCreating directories...")
    for dir_path in ("data/db", "data/logs"):
        Path(dir_path).mkdir(parents=True, exist_ok=True)
        print(f"  ✓ Created {dir_path}")

    print("\nInstalling dependencies...")
    try:
        subprocess.run([sys.executable, "-m", "pip", "install", "-e", ".[test]"], check=True)
        print("  ✓ Dependencies installed")
    except subprocess.CalledProcessError:
        print("  ✗ Failed to install dependencies")
        sys.exit(1)

    if not os.path.exists(".env"):
        print("\n⚠ No .env file found. Creating from .env.example...")
        if os.path.exists(".env.example"):
            shutil.copy(".env.example", ".env")
            print("  ✓ Created .env file - please add your SMTP credentials")
        else:
            print("  ✗ .env.example not found")
    else:
        print("\n✓ .env file exists")

    print("\nInitializing database...")
    try:
        # Import here to ensure dependencies are installed
        from price_tracker.storage.database import Database
        from price_tracker.utils.config import get_config

        Database(get_config().database.url).close()
        print("  ✓ Database initialized")
    except Exception as e:
        print(f"  ✗ Failed to initialize database: {e}")
        sys.exit(1)

    print("\n" + "=" * 80)
    print("✅ Setup completed successfully!")
    print("=" * 80)
    print("\nNext steps:")
    print("1. Edit .env with your SMTP settings")
    print("2. Run 'python -m price_tracker track <url> <email>' to track a product")
    print("3. Run 'python -m price_tracker scheduler' to refresh prices periodically")
    print("4. Run 'python -m price_tracker api' to start the API server")


if __name__ == "__main__":
    main()
