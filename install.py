#!/usr/bin/env python3
"""Install script for bugbuster.

Usage:
    python install.py          # Install into .venv
    python install.py --dev    # Editable install with test and lint tools
"""

import os
import platform
import shutil
import subprocess
import sys

MIN_PYTHON = (3, 11)
REQUIRED_TOOLS = ("docker", "ssh")


def main() -> None:
    if sys.version_info < MIN_PYTHON:
        sys.exit(
            f"Error: Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]}+ is required. "
            f"You have {sys.version_info.major}.{sys.version_info.minor}."
        )

    dev = "--dev" in sys.argv
    project_dir = os.path.dirname(os.path.abspath(__file__))
    venv_dir = os.path.join(project_dir, ".venv")
    is_windows = platform.system() == "Windows"
    pip = os.path.join(venv_dir, "Scripts" if is_windows else "bin", "pip")

    if not os.path.isdir(venv_dir):
        print("Creating virtual environment...")
        subprocess.check_call([sys.executable, "-m", "venv", venv_dir])

    subprocess.check_call([pip, "install", "--upgrade", "pip"])
    target = ".[dev]" if dev else "."
    print(f"Installing bugbuster ({'editable, dev extras' if dev else 'release'})...")
    subprocess.check_call([pip, "install", *(["-e"] if dev else []), target], cwd=project_dir)

    # The memory file lives here
    os.makedirs(os.path.join(project_dir, "data"), exist_ok=True)

    for src, dst in [("config.example.yaml", "config.yaml"), (".env.example", ".env")]:
        src_path = os.path.join(project_dir, src)
        dst_path = os.path.join(project_dir, dst)
        if os.path.exists(dst_path):
            print(f"{dst} already exists, skipping.")
        elif os.path.exists(src_path):
            shutil.copy(src_path, dst_path)
            print(f"Created {dst} from {src}")

    missing = [tool for tool in REQUIRED_TOOLS if shutil.which(tool) is None]
    if missing:
        print(f"Warning: {', '.join(missing)} not found on PATH; the matching tools will report errors.")

    activate_cmd = r".\.venv\Scripts\activate" if is_windows else "source .venv/bin/activate"
    print()
    print("Next steps:")
    print("  1. Edit .env: ANTHROPIC_API_KEY, CLIQ_BOT_WEBHOOK_URL, and optionally JIRA_* / CLIQ_WEBHOOK_SECRET")
    print("  2. Edit config.yaml: docker containers and ssh servers")
    print(f"  3. {activate_cmd}")
    print("  4. bugbuster config-check")
    print("  5. bugbuster start")
    print()


if __name__ == "__main__":
    main()
