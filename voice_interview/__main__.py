#!/usr/bin/env python3
"""
Main entry point for the voice interview system.
Allows running the package with: python -m voice_interview
"""
import sys
import asyncio
import logging
from dataclasses import replace

from .config import get_config
from .interview.models import InterviewType
from .utils import setup_logging
from . import InterviewSession

logger = logging.getLogger("main")


def _parse_float(arg: str, flag: str, low: float, high: float) -> float:
    try:
        value = float(arg.split("=", 1)[1])
    except (ValueError, IndexError):
        print(f"❌ Invalid {flag} value. Use {flag}={low}-{high}")
        sys.exit(1)
    return max(low, min(high, value))


def main():
    """Command-line interface for the interview session."""

    # Load configuration from environment
    try:
        config = get_config()
    except ValueError as e:
        print(f"❌ Configuration Error: {e}")
        sys.exit(1)

    for arg in sys.argv[1:]:
        if arg.startswith("--type="):
            interview_type = arg.split("=", 1)[1].strip().lower()
            valid = [t.value for t in InterviewType]
            if interview_type not in valid:
                print(f"❌ Invalid interview type. Use one of: {', '.join(valid)}")
                sys.exit(1)
            config = replace(config, interview_type=interview_type)
        elif arg.startswith("--name="):
            config = replace(config, candidate_name=arg.split("=", 1)[1].strip() or config.candidate_name)
        elif arg == "--mute":
            config = replace(config, start_muted=True)
        elif arg.startswith("--confidence="):
            config = replace(config, confidence_threshold=_parse_float(arg, "--confidence", 0.0, 1.0))
        elif arg.startswith("--silence-ms="):
            config = replace(config, silence_window=_parse_float(arg, "--silence-ms", 100, 10000) / 1000.0)
        else:
            print(f"❌ Unknown option: {arg}")
            print("   Options: --type=<technical|coding|behavioral|frontend|backend> --name=<name>"
                  " --mute --confidence=0.0-1.0 --silence-ms=<ms>")
            sys.exit(1)

    setup_logging(config.log_file, config.log_level)

    print(f"🧑‍💼 Interviewer: {config.persona.name} ({config.persona.role})")
    print(f"🎯 Interview type: {config.interview_type}")
    if config.start_muted:
        print("🔇 Interviewer audio starts muted (type /unmute to hear it)")

    session = InterviewSession(config, console=True, warmup=True)
    try:
        asyncio.run(session.run())
    except KeyboardInterrupt:
        # asyncio.run cancels the session task, which disposes it
        print("\n👋 Interview interrupted")
    except Exception as e:
        logger.exception("Interview failed")
        print(f"❌ Interview failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
