#!/usr/bin/env python3
"""
Show which ports and API URL the standalone dev tools will use.

The dev supervisor ignores these values and picks ports at runtime;
this only reflects what kill_ports.py and a manually started backend see.
"""

import os

from dotenv import load_dotenv

load_dotenv()

frontend_port = os.getenv("PORT") or "3000"
backend_port = os.getenv("BACKEND_PORT") or "3005"
api_base = os.getenv("REACT_APP_API_BASE_URL")

print("🔧 Environment Variables Test:")
print("PORT:", os.getenv("PORT") or "Not set (default: 3000)")
print("BACKEND_PORT:", os.getenv("BACKEND_PORT") or "Not set (default: 3005)")
print("REACT_APP_API_BASE_URL:", api_base or "Not set")
print("SNAPTRADE_CLIENT_ID:", "set" if os.getenv("SNAPTRADE_CLIENT_ID") else "Not set")
print("SNAPTRADE_CONSUMER_KEY:", "set" if os.getenv("SNAPTRADE_CONSUMER_KEY") else "Not set")

print("\n📋 Actual ports that will be used:")
print("Frontend will run on port:", frontend_port)
print("Backend will run on port:", backend_port)
print("Frontend will connect to API:", api_base or f"http://localhost:{backend_port}/api")
