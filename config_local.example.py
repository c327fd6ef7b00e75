# config_local.example.py

"""
Example local overrides.

Usage:
  1) Copy this file to `config_local.py`
  2) Adjust values for your machine
  3) Never commit `config_local.py` (it is gitignored)

Prefer `.env` for settings. This file should contain only safe overrides.
"""

# Example: keep the working set in the SQLite store instead of the local cache
# AUTHORITY = "durable"

# Example: change model order
# LLM_MODELS = [
#     "llama3.2:1b",
#     "qwen2.5:0.5b",
# ]
