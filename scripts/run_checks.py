#!/usr/bin/env python3
"""Run the repository checks: ruff, pyright and pytest.

Exits non-zero on the first failing step so CI can rely on the status.
"""

from __future__ import annotations

import argparse
import subprocess
import sys


def run(cmd: list[str]) -> int:
    print("=>", " ".join(cmd))
    return subprocess.run(cmd, check=False).returncode


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--fix", action="store_true", help="Let ruff apply safe fixes")
    parser.add_argument("--no-types", action="store_true", help="Skip pyright")
    parser.add_argument("--no-tests", action="store_true", help="Skip pytest")
    parser.add_argument("-k", dest="keyword", help="Only run tests matching this pytest expression")
    args = parser.parse_args()

    ruff = [sys.executable, "-m", "ruff", "check", "image_processor", "tests"]
    if args.fix:
        ruff.append("--fix")
    steps: list[tuple[str, list[str]]] = [("ruff", ruff)]
    if not args.no_types:
        steps.append(("pyright", [sys.executable, "-m", "pyright"]))
    if not args.no_tests:
        pytest_cmd = [sys.executable, "-m", "pytest", "-q"]
        if args.keyword:
            pytest_cmd += ["-k", args.keyword]
        steps.append(("pytest", pytest_cmd))

    for name, cmd in steps:
        rc = run(cmd)
        if rc != 0:
            print(f"{name} failed")
            return rc

    print("All checks passed")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
