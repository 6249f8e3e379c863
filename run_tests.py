#!/usr/bin/env python3
"""Test runner for Tramline with coverage reporting."""

import sys
import subprocess
import os
from pathlib import Path


def run_tests():
    """Run all tests with coverage reporting."""

    os.chdir(Path(__file__).parent)

    print("Running Tramline Test Suite")
    print("=" * 50)

    try:
        result = subprocess.run([
            sys.executable, "-m", "pytest",
            "tests/",
            "-v",
            "--cov=tramline_pkg",
            "--cov-report=html",
            "--cov-report=term-missing",
        ], check=False)

        if result.returncode == 0:
            print("\nAll tests passed!")
            print("Coverage report generated in htmlcov/")
            return True
        else:
            print(f"\nTests failed with return code {result.returncode}")
            return False

    except Exception as e:
        print(f"Error running tests: {e}")
        return False


def run_server_tests():
    """Run the development server tests on their own."""
    print("\nRunning dev server tests...")
    try:
        result = subprocess.run([
            sys.executable, "-m", "pytest",
            "tests/test_server.py",
            "-v",
            "--durations=10"
        ], check=False)

        if result.returncode == 0:
            print("Dev server tests passed!")
            return True
        else:
            print("Dev server tests failed!")
            return False

    except Exception as e:
        print(f"Error running dev server tests: {e}")
        return False


def main():
    """Main test runner."""
    success = True

    if not run_tests():
        success = False

    if not run_server_tests():
        success = False

    print("\n" + "=" * 50)
    if success:
        print("All test suites completed successfully!")
        print("Check htmlcov/index.html for detailed coverage report")
    else:
        print("Some tests failed. Please review the output above.")

    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
