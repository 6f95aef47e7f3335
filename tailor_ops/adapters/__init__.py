"""
Adapters for outbound channels: SMS (Twilio) and realtime websocket events.
"""
