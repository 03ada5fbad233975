"""
Web presentation layer for bandwatch callbacks.

Architectural Intent:
- Receives approval clicks and remote "check now" requests over HTTP
- Uses Python stdlib only (http.server + asyncio)
- Complements the CLI, which owns process lifecycle and scheduling
"""
