"""Voice assistant configuration and tool handlers"""
