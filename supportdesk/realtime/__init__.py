"""Real-time transport: WebSocket rooms, presence and message routing."""
