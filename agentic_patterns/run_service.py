#!/usr/bin/env python
"""
Quick start script for the Agentic Patterns service.

This script checks the environment, reports the resolved configuration and
starts the service.
"""

import os
import sys
from pathlib import Path

PROVIDER_KEYS = {
    "gemini": "GEMINI_API_KEY",
    "openai": "OPENAI_API_KEY",
}


def ensure_env_file(project_root: Path) -> None:
    """Create .env from .env.example on first run."""
    env_file = project_root / ".env"
    env_example = project_root / ".env.example"

    if env_file.exists():
        return

    print("⚠️  .env file not found.")
    if env_example.exists():
        print(f"Copying from {env_example} to {env_file}...")
        env_file.write_text(env_example.read_text())
        print("✓ Created .env file")
    print()
    print("Required configuration:")
    print("  - GEMINI_API_KEY or OPENAI_API_KEY (or LLM_PROVIDER=mock)")
    print("  - FEEDBACK_MODE=console | api | static")
    print()
    if sys.stdin.isatty():
        input("Press Enter to continue after configuring .env...")


def check_provider() -> bool:
    """Report which model provider will be used; False if its key is missing."""
    from adapters.llm import get_default_provider

    provider = get_default_provider().value
    key_name = PROVIDER_KEYS.get(provider)
    if key_name and not os.getenv(key_name):
        print(f"❌ LLM provider '{provider}' selected but {key_name} is not set")
        return False

    print(f"✓ LLM provider: {provider}")
    return True


def main() -> None:
    """Main entry point."""
    print("=" * 50)
    print("Agentic Patterns Service Quick Start")
    print("=" * 50)
    print()

    script_dir = Path(__file__).parent
    project_root = script_dir.parent
    sys.path.insert(0, str(project_root))

    ensure_env_file(project_root)

    print("\nChecking dependencies...")
    try:
        import anyio  # noqa: F401
        import fastapi  # noqa: F401
        import pydantic  # noqa: F401
        import yaml  # noqa: F401
        print("✓ Core dependencies installed")
    except ImportError as e:
        print(f"❌ Missing dependency: {e}")
        print("\nInstall dependencies with:")
        print("  pip install -e .")
        sys.exit(1)

    print("\nRunning pre-flight checks...")
    print("-" * 50)

    version_info = sys.version_info
    if version_info < (3, 11):
        print(f"⚠️  Python {version_info.major}.{version_info.minor} detected.")
        print("   Python 3.11+ is recommended.")
    else:
        print(f"✓ Python {version_info.major}.{version_info.minor}")

    if not check_provider():
        sys.exit(1)

    from agentic_patterns.service.config import config
    from agentic_patterns.service.prompts import PromptLibrary

    try:
        PromptLibrary.load()
        print("✓ Prompt library loaded")
    except Exception as e:
        print(f"❌ Prompt library is invalid: {e}")
        sys.exit(1)

    print(f"✓ Feedback mode: {config.feedback_mode}")
    print(
        f"✓ Parallel workers: {config.parallel_max_workers}, "
        f"loop ceiling: {config.loop_max_iterations}, "
        f"supervisor steps: {config.supervisor_max_steps}"
    )

    print("\n" + "=" * 50)
    print("Starting Agentic Patterns Service")
    print("=" * 50)
    print()
    print(f"Service will be available at: http://localhost:{config.port}")
    print(f"API documentation at: http://localhost:{config.port}/docs")
    print()
    print("Press Ctrl+C to stop the service")
    print()

    try:
        from agentic_patterns.service.main import main as service_main

        service_main()

    except KeyboardInterrupt:
        print("\n\nService stopped by user")
        sys.exit(0)
    except Exception as e:
        print(f"\n❌ Error starting service: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
