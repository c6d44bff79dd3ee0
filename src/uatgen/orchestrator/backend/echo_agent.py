"""Local deterministic agent for CLI backend integration tests."""

from __future__ import annotations

import argparse
import os
import re
import sys
from pathlib import Path

_TICKET_LINE = re.compile(r"^Ticket:\s*(?P<ticket>\S+)", re.MULTILINE)


def main(argv: list[str] | None = None) -> int:
    """Answer like a generation or validation agent without calling a model."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--mode", choices=("generate", "validate"), required=True)
    parser.add_argument("--prompt-file", required=True)
    args, _ = parser.parse_known_args(argv)

    prompt = Path(args.prompt_file).read_text("utf-8")
    match = _TICKET_LINE.search(prompt)
    ticket_id = match.group("ticket") if match else "UNKNOWN"

    if args.mode == "generate":
        if os.getenv("UATGEN_ECHO_FAIL", "0") == "1":
            print("Error: echo agent was asked to fail.")
            return 0
        print(
            "ID: UAT-001\n"
            f"Title: Verify the main requirement of {ticket_id}\n"
            "Steps:\n"
            "1. Open the application.\n"
            "2. Perform the action described in the ticket.\n"
            "Result: The application behaves as described in the ticket.",
        )
        return 0

    quality = os.getenv("UATGEN_ECHO_QUALITY", "QUALITY_HIGH")
    print(
        f"Coherence: {quality}\n"
        f"Completeness: {quality}\n"
        f"Clarity: {quality}\n"
        f"TestData: {quality}\n"
        f"OVERALL_QUALITY: {quality}\n"
        "\n"
        "ISSUES: none",
    )
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
