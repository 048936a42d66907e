# /// script
# requires-python = ">=3.12"
# dependencies = [
#     "hark-assistant",
# ]
#
# [tool.uv.sources]
# hark-assistant = { path = "." }
# ///
"""Standalone, offline voice assistant for small Linux boards."""

from hark.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
