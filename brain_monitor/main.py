#!/usr/bin/env python3
"""
brain-monitor: validation orchestration for pnpm/turbo monorepos.

This module is a thin shim that exposes the CLI app from brain_monitor.cli.

Usage:
    brain-monitor validate
    brain-monitor test unit --target 90
    brain-monitor watch --all
"""

from brain_monitor.cli.cli import app, bootstrap

bootstrap()

if __name__ == "__main__":
    app()
