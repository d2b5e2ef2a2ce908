"""Customer conversations: persistence, reply templates, generation and orchestration.

Import submodules directly; this package stays import-light because the
escalation services depend on :mod:`supportdesk.conversations.repository`.
"""
