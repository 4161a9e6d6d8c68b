"""Post-clone environment setup helper.

Run once after installing the package:

    pip install -e ".[sentiment,test]"
    python setup_env.py

This script:
1. Verifies all required imports resolve correctly.
2. Reports whether the optional FinBERT stack (transformers + torch) is present.
3. Reports which API keys are set in the environment / .env.
"""

import sys

from dotenv import load_dotenv

load_dotenv()


def verify_imports() -> None:
    print("Verifying core imports...")
    required = [
        ("pandas", "pandas"),
        ("requests", "requests"),
        ("feedparser", "feedparser"),
        ("yaml", "PyYAML"),
        ("dotenv", "python-dotenv"),
    ]
    all_ok = True
    for mod, pkg in required:
        try:
            __import__(mod)
            print(f"  [OK] {pkg}")
        except ImportError:
            print(f"  [MISSING] {pkg}  →  run: pip install {pkg}")
            all_ok = False

    if not all_ok:
        print("\nSome packages are missing. Run:  pip install -e .")
        sys.exit(1)


def check_sentiment_stack() -> None:
    print("\nChecking optional sentiment stack...")
    for mod in ("transformers", "torch"):
        try:
            __import__(mod)
            print(f"  [OK] {mod}")
        except ImportError:
            print(
                f"  [WARN] {mod} not installed — news headlines cannot be scored.\n"
                f"         Install with:  pip install -e \".[sentiment]\""
            )


def check_api_keys() -> None:
    from buyindex.core.config import get_secret

    print("\nChecking API keys...")
    for name, effect in (
        ("SERPAPI_API_KEY", "social and search-trend scores fall back to neutral"),
        ("OPENROUTER_API_KEY", "LLM judges neutral, price history synthesized"),
    ):
        if get_secret(name):
            print(f"  [OK] {name}")
        else:
            print(f"  [WARN] {name} not set — {effect}")


def verify_package_imports() -> None:
    print("\nVerifying buyindex imports...")
    try:
        from buyindex.pipeline.engine import IndexEngine  # noqa: F401
        from buyindex.pipeline.orchestrator import ScoreOrchestrator  # noqa: F401
        from buyindex.providers.news import GoogleNewsProvider  # noqa: F401
        print("  [OK] All buyindex modules import cleanly.")
    except Exception as exc:
        print(f"  [ERROR] buyindex import failed: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    print("=" * 60)
    print("  Buy Index — Environment Setup Check")
    print("=" * 60)
    verify_imports()
    check_sentiment_stack()
    check_api_keys()
    verify_package_imports()
    print("\n" + "=" * 60)
    print("  Setup complete. You can now run: python run_index.py")
    print("=" * 60)
