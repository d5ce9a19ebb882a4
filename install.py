#!/usr/bin/env python3
"""Cross-platform install script for fanuc-bot.

Usage:
    python install.py                    # Production install
    python install.py --dev              # Development install (adds pytest)
    python install.py --token 123:ABC    # Also store the Telegram bot token in .env
"""

import argparse
import os
import platform
import shutil
import subprocess
import sys

MIN_PYTHON = (3, 11)
TOKEN_VAR = "TELEGRAM_BOT_TOKEN"


def main() -> None:
    parser = argparse.ArgumentParser(description="Install fanuc-bot into ./.venv")
    parser.add_argument("--dev", action="store_true", help="Install test dependencies too")
    parser.add_argument("--token", help="Telegram bot token to write into .env")
    parser.add_argument("--skip-check", action="store_true", help="Do not run config-check at the end")
    args = parser.parse_args()

    # 1. Check Python version
    if sys.version_info < MIN_PYTHON:
        sys.exit(
            f"Error: Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]}+ is required. "
            f"You have {sys.version_info.major}.{sys.version_info.minor}."
        )
    print(f"Python {sys.version_info.major}.{sys.version_info.minor} detected. OK.")

    project_dir = os.path.dirname(os.path.abspath(__file__))
    # 2. Virtual environment
    venv_python = _create_venv(project_dir)

    # 3. Install project
    extra = ".[dev]" if args.dev else "."
    print(f"Installing fanuc-bot ({'development' if args.dev else 'production'})...")
    subprocess.check_call([venv_python, "-m", "pip", "install", "--upgrade", "pip"])
    install_cmd = [venv_python, "-m", "pip", "install"]
    subprocess.check_call(install_cmd + (["-e", extra] if args.dev else [extra]), cwd=project_dir)

    # 4. SQLite lives under data/
    os.makedirs(os.path.join(project_dir, "data"), exist_ok=True)

    # 5. Config files
    for src, dst in [("config.example.yaml", "config.yaml"), (".env.example", ".env")]:
        _copy_if_missing(project_dir, src, dst)

    # 6. Bot token
    env_path = os.path.join(project_dir, ".env")
    token = args.token
    if token is None and sys.stdin.isatty() and not _read_env(env_path).get(TOKEN_VAR):
        token = input(f"{TOKEN_VAR} (from @BotFather, empty to set later): ").strip()
    if token:
        _write_env(env_path, TOKEN_VAR, token)
        print(f"Stored {TOKEN_VAR} in .env")

    # 7. Validate the resulting configuration with the installed CLI
    check_ok = True
    if not args.skip_check:
        print("Checking configuration...")
        check_ok = (
            subprocess.call([venv_python, "-m", "fanuc_bot", "config-check"], cwd=project_dir) == 0
        )

    _print_next_steps(platform.system() == "Windows", token_set=bool(_read_env(env_path).get(TOKEN_VAR)))
    if not check_ok:
        sys.exit("config-check failed: fix config.yaml / .env and run it again.")


def _create_venv(project_dir: str) -> str:
    """Create ./.venv when missing and return its interpreter path."""
    venv_dir = os.path.join(project_dir, ".venv")
    if not os.path.isdir(venv_dir):
        print("Creating virtual environment...")
        subprocess.check_call([sys.executable, "-m", "venv", venv_dir])
    else:
        print("Virtual environment already exists.")
    if platform.system() == "Windows":
        return os.path.join(venv_dir, "Scripts", "python.exe")
    return os.path.join(venv_dir, "bin", "python")


def _copy_if_missing(project_dir: str, src: str, dst: str) -> None:
    src_path = os.path.join(project_dir, src)
    dst_path = os.path.join(project_dir, dst)
    if os.path.exists(dst_path):
        print(f"{dst} already exists, skipping.")
    elif os.path.exists(src_path):
        shutil.copy(src_path, dst_path)
        print(f"Created {dst} from {src}")


def _read_env(path: str) -> dict[str, str]:
    values: dict[str, str] = {}
    if not os.path.exists(path):
        return values
    with open(path, encoding="utf-8") as f:
        for line in f:
            name, sep, value = line.strip().partition("=")
            if sep and not name.startswith("#"):
                values[name.strip()] = value.strip()
    return values


def _write_env(path: str, name: str, value: str) -> None:
    """Set ``name=value`` in a .env file, replacing an existing assignment."""
    lines: list[str] = []
    if os.path.exists(path):
        with open(path, encoding="utf-8") as f:
            lines = f.read().splitlines()
    for i, line in enumerate(lines):
        if line.split("=", 1)[0].strip() == name:
            lines[i] = f"{name}={value}"
            break
    else:
        lines.append(f"{name}={value}")
    with open(path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")


def _print_next_steps(is_windows: bool, token_set: bool) -> None:
    activate_cmd = r".\.venv\Scripts\activate" if is_windows else "source .venv/bin/activate"

    print()
    print("=" * 50)
    print("  fanuc-bot installation complete!")
    print("=" * 50)
    print()
    print("Next steps:")
    step = 1
    if not token_set:
        print(f"  {step}. Set {TOKEN_VAR}=... in .env")
        step += 1
    print(f"  {step}. Review config.yaml (Kafka scan window, Fanuc API prefix, live refresh)")
    print(f"  {step + 1}. Activate the virtual environment:")
    print(f"       {activate_cmd}")
    print(f"  {step + 2}. Start the bot:")
    print("       fanuc-bot start")
    print()


if __name__ == "__main__":
    main()
