"""
linking — cloud-backed files in the local tree.

Provides:
  • Drive document create / list helpers over an authenticated httpx client
  • A small local filesystem abstraction for pointer files
  • ``LinkOrchestrator`` — create / open / move / delete linked documents
  • ``Workspace`` — the outward facade (login, disconnect, status, links)
"""
