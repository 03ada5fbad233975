"""
Telegram presentation layer for bandwatch.

Architectural Intent:
- Lets the operator drive bandwatch from the Telegram chat it already reports to
- Long-polls the Bot API through httpx; no webhook endpoint is exposed
- Complements the callback server: the same trigger channel and approval
  store back both surfaces
"""
