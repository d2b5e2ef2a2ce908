"""HTTP and WebSocket routers mounted by :mod:`supportdesk.main`."""
