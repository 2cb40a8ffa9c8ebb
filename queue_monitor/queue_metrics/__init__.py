"""Broker depth readers. Each exposes connect, declare, depth_of, add_close_listener and close."""
